"""
Option store: durable key/value settings on top of the Django ORM.

One ``OptionStore`` is constructed by the host (bound to a database alias and
a clock) and passed explicitly to whatever needs it.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, transaction
from django.utils import timezone

from simple_options.encoding import decode_value, encode_value, validate_key
from simple_options.exceptions import DataAccessError
from simple_options.models import Option
from simple_options.results import OptionResult
from simple_options.schema import ensure_option_table

logger = logging.getLogger(__name__)

ErrorHook = Callable[[DataAccessError], None]


class OptionStore:
    """
    Key/value option store.

    Every public operation provisions the table on first use. Database
    failures never escape: the ``write``/``read``/``remove``/``lookup``/
    ``read_all`` methods report them as a FAILED ``OptionResult``, and the
    ``set``/``get``/``delete``/``exists``/``get_all`` wrappers collapse them
    to ``False``, the default or an empty dict. Malformed JSON on read is the
    one failure that is raised.
    """

    def __init__(
        self,
        using: Optional[str] = None,
        clock: Optional[Callable[[], Any]] = None,
        on_error: Optional[ErrorHook] = None,
        strict_provisioning: Optional[bool] = None,
    ):
        self.using = using or getattr(settings, "SIMPLE_OPTIONS_DATABASE", DEFAULT_DB_ALIAS)
        self.clock = clock or timezone.now
        self.on_error = on_error
        if strict_provisioning is None:
            strict_provisioning = getattr(settings, "SIMPLE_OPTIONS_STRICT_PROVISIONING", False)
        self.strict_provisioning = strict_provisioning
        self._provisioned = False

    def provision(self) -> bool:
        """
        Create the options table if it is missing.

        Only a successful run is remembered, so a failed creation is retried
        by the next operation instead of leaving the store broken for good.
        """
        if not self._provisioned:
            self._provisioned = ensure_option_table(self.using, strict=self.strict_provisioning)
        return self._provisioned

    # Explicit-result API

    def write(self, key: str, value: Any, autoload: bool = False) -> OptionResult:
        """
        Insert or update an option.

        Returns OK when a row was written, NOT_FOUND when the row vanished
        between the existence check and the update, FAILED on database errors.
        """
        validate_key(key)
        raw, is_json = encode_value(value)
        self.provision()

        fields = {"value": raw, "is_json": is_json, "autoload": bool(autoload)}
        try:
            if self._row_exists(key):
                affected = self._update(key, fields)
            else:
                affected = self._insert_or_update(key, fields)
        except DatabaseError as e:
            return self._failure("store", key, e)

        return OptionResult.success(value) if affected > 0 else OptionResult.missing()

    def read(self, key: str) -> OptionResult:
        validate_key(key)
        self.provision()
        try:
            row = self._queryset().filter(key=key).values("value", "is_json").first()
        except DatabaseError as e:
            return self._failure("retrieve", key, e)

        if row is None:
            return OptionResult.missing()
        return OptionResult.success(decode_value(row["value"], row["is_json"], key=key))

    def remove(self, key: str) -> OptionResult:
        validate_key(key)
        self.provision()
        try:
            deleted, _ = self._queryset().filter(key=key).delete()
        except DatabaseError as e:
            return self._failure("delete", key, e)
        return OptionResult.success() if deleted > 0 else OptionResult.missing()

    def lookup(self, key: str) -> OptionResult:
        validate_key(key)
        self.provision()
        try:
            count = self._queryset().filter(key=key).count()
        except DatabaseError as e:
            return self._failure("check existence of", key, e)
        return OptionResult.success() if count > 0 else OptionResult.missing()

    def read_all(self, autoload: Optional[bool] = None) -> OptionResult:
        """
        Read every option, optionally restricted to one autoload partition.

        Args:
            autoload: True/False to filter on the autoload flag, None for all rows

        Returns:
            OK result whose value is a dict of key -> decoded value
        """
        self.provision()
        try:
            queryset = self._queryset()
            if autoload is not None:
                queryset = queryset.filter(autoload=bool(autoload))
            rows = list(queryset.values_list("key", "value", "is_json"))
        except DatabaseError as e:
            return self._failure("retrieve all", None, e)

        return OptionResult.success(
            {key: decode_value(raw, is_json, key=key) for key, raw, is_json in rows}
        )

    # Boolean/default API

    def set(self, key: str, value: Any, autoload: bool = False) -> bool:
        return self.write(key, value, autoload).ok

    def get(self, key: str, default: Any = None) -> Any:
        return self.read(key).value_or(default)

    def delete(self, key: str) -> bool:
        """
        Delete an option.

        False means either that the key did not exist or that the database
        failed; use ``remove`` to tell the two apart.
        """
        return self.remove(key).ok

    def exists(self, key: str) -> bool:
        return self.lookup(key).ok

    def has(self, key: str) -> bool:
        return self.exists(key)

    def get_all(self, autoload: Optional[bool] = None) -> Dict[str, Any]:
        return self.read_all(autoload).value_or({})

    def set_multiple(self, options: Mapping[str, Any], autoload: bool = False) -> bool:
        """
        Set several options with the same autoload flag.

        Not atomic: every entry is attempted even after a failure, and entries
        written before a failure stay written. Every key and value is checked
        up front, so an invalid key or unserializable value raises before
        anything is written.

        Returns:
            True only if every entry was stored
        """
        for key, value in options.items():
            validate_key(key)
            encode_value(value)

        success = True
        for key, value in options.items():
            if not self.set(key, value, autoload):
                success = False
        return success

    # Database access

    def _queryset(self):
        return Option.objects.using(self.using)

    def _row_exists(self, key: str) -> bool:
        return self._queryset().filter(key=key).exists()

    def _update(self, key: str, fields: Dict[str, Any]) -> int:
        return self._queryset().filter(key=key).update(date_updated=self.clock(), **fields)

    def _insert_or_update(self, key: str, fields: Dict[str, Any]) -> int:
        # The unique index on key decides races between concurrent inserts;
        # the loser applies its value as an update instead.
        now = self.clock()
        try:
            with transaction.atomic(using=self.using):
                self._queryset().create(key=key, date_created=now, date_updated=now, **fields)
        except IntegrityError:
            logger.info(f"Option {key!r} was inserted concurrently, updating instead")
            return self._update(key, fields)
        return 1

    def _failure(self, operation: str, key: Optional[str], exc: DatabaseError) -> OptionResult:
        error = DataAccessError(operation, key, exc)
        logger.error(str(error))
        if self.on_error is not None:
            self.on_error(error)
        return OptionResult.failure(error)
