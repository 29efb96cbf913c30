from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, OperationalError, connection
from django.test import TransactionTestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITransactionTestCase

from simple_options import schema, urls as option_urls
from simple_options.exceptions import (
    DataAccessError,
    InvalidOptionKey,
    OptionDecodeError,
    OptionEncodeError,
    SchemaProvisioningError,
)
from simple_options.models import Option
from simple_options.results import Outcome
from simple_options.services import OptionStore


class TickingClock:
    """Clock that advances one second per call."""

    def __init__(self):
        self.current = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class DropOptionTableMixin:
    # The table is unmanaged, so test teardown does not flush or remove it.
    def tearDown(self):
        if schema.option_table_exists(DEFAULT_DB_ALIAS):
            schema.drop_option_table(DEFAULT_DB_ALIAS)
        # The URLconf store lives for the whole run and must provision again.
        option_urls.option_store._provisioned = False
        super().tearDown()


class ProvisioningTests(DropOptionTableMixin, TransactionTestCase):
    def test_first_operation_creates_table(self):
        self.assertFalse(schema.option_table_exists(DEFAULT_DB_ALIAS))

        store = OptionStore()
        self.assertEqual(store.get("missing", "fallback"), "fallback")
        self.assertTrue(schema.option_table_exists(DEFAULT_DB_ALIAS))

    def test_provisioning_twice_is_harmless(self):
        self.assertTrue(OptionStore().provision())
        self.assertTrue(OptionStore().provision())

        with connection.cursor() as cursor:
            tables = connection.introspection.table_names(cursor)
            constraints = connection.introspection.get_constraints(cursor, "simple_options")

        self.assertEqual(tables.count("simple_options"), 1)
        self.assertIn("idx_simple_options_autoload", constraints)
        self.assertTrue(
            any(c["unique"] and c["columns"] == ["key"] for c in constraints.values())
        )

    def test_failed_creation_is_logged_and_retried(self):
        store = OptionStore()
        with mock.patch.object(
            schema, "create_option_table", side_effect=DatabaseError("permission denied")
        ):
            with self.assertLogs("simple_options.schema", level="ERROR"):
                self.assertFalse(store.provision())
            self.assertFalse(store.set("site_name", "Example"))

        self.assertTrue(store.set("site_name", "Example"))
        self.assertEqual(store.get("site_name"), "Example")

    def test_failed_existence_check_is_logged_as_such(self):
        store = OptionStore()
        with mock.patch.object(
            schema, "option_table_exists", side_effect=OperationalError("connection refused")
        ), mock.patch.object(schema, "create_option_table") as create:
            with self.assertLogs("simple_options.schema", level="ERROR") as logs:
                self.assertFalse(store.provision())

        create.assert_not_called()
        self.assertIn("Failed to check whether simple_options exists", logs.output[0])
        self.assertIn("connection refused", logs.output[0])

    @override_settings(SIMPLE_OPTIONS_STRICT_PROVISIONING=True)
    def test_strict_provisioning_raises(self):
        store = OptionStore()
        with mock.patch.object(
            schema, "create_option_table", side_effect=DatabaseError("permission denied")
        ):
            with self.assertRaises(SchemaProvisioningError):
                store.provision()


class OptionStoreTests(DropOptionTableMixin, TransactionTestCase):
    def setUp(self):
        self.clock = TickingClock()
        self.store = OptionStore(clock=self.clock)

    def test_values_round_trip(self):
        values = {
            "string": "hello",
            "empty_string": "",
            "integer": 42,
            "float": 1.5,
            "true": True,
            "false": False,
            "null": None,
            "list": [1, "two", None],
            "empty_dict": {},
            "nested": {"menu": [{"label": "Home", "visible": True}], "depth": {"a": {"b": 2}}},
        }
        for key, value in values.items():
            self.assertTrue(self.store.set(key, value), key)

        for key, value in values.items():
            self.assertEqual(self.store.get(key, "missing"), value, key)

    def test_strings_are_stored_verbatim(self):
        self.store.set("greeting", "hello")
        self.store.set("quoted", '"hello"')

        row = Option.objects.get(key="greeting")
        self.assertFalse(row.is_json)
        self.assertEqual(row.value, "hello")
        self.assertEqual(self.store.get("quoted"), '"hello"')

    def test_non_strings_are_stored_as_json(self):
        self.store.set("limits", {"max": 10})

        row = Option.objects.get(key="limits")
        self.assertTrue(row.is_json)
        self.assertEqual(row.value, '{"max": 10}')

    def test_set_updates_existing_row_in_place(self):
        self.store.set("theme", "light")
        first = Option.objects.get(key="theme")

        self.assertTrue(self.store.set("theme", {"name": "dark"}, autoload=True))

        rows = Option.objects.filter(key="theme")
        self.assertEqual(rows.count(), 1)
        updated = rows.get()
        self.assertEqual(updated.id, first.id)
        self.assertEqual(updated.date_created, first.date_created)
        self.assertGreater(updated.date_updated, first.date_updated)
        self.assertTrue(updated.is_json)
        self.assertTrue(updated.autoload)
        self.assertEqual(self.store.get("theme"), {"name": "dark"})

    def test_new_row_has_matching_timestamps(self):
        self.store.set("fresh", 1)
        row = Option.objects.get(key="fresh")
        self.assertEqual(row.date_created, row.date_updated)

    def test_delete(self):
        self.store.set("temp", [1, 2])

        self.assertTrue(self.store.delete("temp"))
        self.assertEqual(self.store.get("temp", "gone"), "gone")
        self.assertFalse(self.store.exists("temp"))
        self.assertFalse(self.store.delete("temp"))

    def test_exists_and_has(self):
        self.assertFalse(self.store.exists("flag"))
        self.store.set("flag", False)
        self.assertTrue(self.store.exists("flag"))
        self.assertTrue(self.store.has("flag"))

    def test_get_returns_default_unchanged(self):
        default = {"untouched": True}
        self.assertIs(self.store.get("absent", default), default)
        self.assertIsNone(self.store.get("absent"))

    def test_get_all_filters_on_autoload(self):
        self.store.set("a", {"x": 1}, autoload=True)
        self.store.set("b", "plain", autoload=False)

        self.assertEqual(self.store.get_all(True), {"a": {"x": 1}})
        self.assertEqual(self.store.get_all(False), {"b": "plain"})
        self.assertEqual(self.store.get_all(), {"a": {"x": 1}, "b": "plain"})

    def test_set_multiple(self):
        self.assertTrue(self.store.set_multiple({"one": 1, "two": "2"}, autoload=True))
        self.assertEqual(self.store.get_all(True), {"one": 1, "two": "2"})

    def test_set_multiple_attempts_every_entry(self):
        original = self.store._insert_or_update

        def flaky(key, fields):
            if key == "broken":
                raise OperationalError("disk I/O error")
            return original(key, fields)

        with mock.patch.object(self.store, "_insert_or_update", side_effect=flaky):
            result = self.store.set_multiple({"first": 1, "broken": 2, "last": 3})

        self.assertFalse(result)
        self.assertEqual(self.store.get_all(), {"first": 1, "last": 3})

    def test_set_multiple_validates_keys_before_writing(self):
        with self.assertRaises(InvalidOptionKey):
            self.store.set_multiple({"fine": 1, "": 2})
        self.assertFalse(self.store.exists("fine"))

    def test_set_multiple_checks_values_before_writing(self):
        with self.assertRaises(OptionEncodeError):
            self.store.set_multiple({"first": 1, "bad": {1, 2}, "last": 3})
        self.assertFalse(self.store.exists("first"))
        self.assertFalse(self.store.exists("last"))

    def test_unique_index_rejects_duplicate_keys(self):
        self.store.set("dup", "first")
        now = self.clock()
        with self.assertRaises(IntegrityError):
            Option.objects.create(
                key="dup", value="second", is_json=False, date_created=now, date_updated=now
            )
        self.assertEqual(Option.objects.filter(key="dup").count(), 1)

    def test_concurrent_insert_falls_back_to_update(self):
        self.store.set("race", "first")

        # Simulate losing the race: the existence check misses the other writer's row.
        with mock.patch.object(self.store, "_row_exists", return_value=False):
            with self.assertLogs("simple_options.services", level="INFO"):
                self.assertTrue(self.store.set("race", "second"))

        self.assertEqual(Option.objects.filter(key="race").count(), 1)
        self.assertEqual(self.store.get("race"), "second")

    def test_invalid_keys_are_rejected(self):
        for key in ["", "k" * 256, "é" * 128, None]:
            with self.assertRaises(InvalidOptionKey):
                self.store.set(key, "value")
        self.assertTrue(self.store.set("k" * 255, "value"))

    def test_unserializable_value_raises(self):
        with self.assertRaises(OptionEncodeError):
            self.store.set("bad", {1, 2})
        with self.assertRaises(OptionEncodeError):
            self.store.set("nan", float("nan"))
        self.assertFalse(self.store.exists("bad"))

    def test_malformed_json_is_raised(self):
        self.store.provision()
        Option.objects.create(
            key="corrupt",
            value="{not json",
            is_json=True,
            date_created=self.clock(),
            date_updated=self.clock(),
        )

        with self.assertRaises(OptionDecodeError):
            self.store.get("corrupt", "default")
        with self.assertRaises(OptionDecodeError):
            self.store.get_all()

    def test_database_failures_degrade_to_defaults(self):
        errors = []
        store = OptionStore(on_error=errors.append)
        store.set("kept", "value")

        with mock.patch.object(store, "_queryset", side_effect=OperationalError("connection lost")):
            with self.assertLogs("simple_options.services", level="ERROR"):
                self.assertFalse(store.set("kept", "other"))
                self.assertEqual(store.get("kept", "default"), "default")
                self.assertFalse(store.delete("kept"))
                self.assertFalse(store.exists("kept"))
                self.assertEqual(store.get_all(), {})

        self.assertEqual(len(errors), 5)
        self.assertTrue(all(isinstance(e, DataAccessError) for e in errors))
        self.assertEqual(errors[0].key, "kept")
        self.assertEqual(store.get("kept"), "value")

    def test_results_distinguish_missing_from_failed(self):
        self.assertEqual(self.store.remove("nothing").outcome, Outcome.NOT_FOUND)
        self.assertEqual(self.store.read("nothing").outcome, Outcome.NOT_FOUND)

        with mock.patch.object(self.store, "_queryset", side_effect=OperationalError("locked")):
            result = self.store.remove("nothing")

        self.assertTrue(result.failed)
        self.assertIsInstance(result.error.cause, OperationalError)
        self.assertEqual(result.error.operation, "delete")


class OptionApiTests(DropOptionTableMixin, APITransactionTestCase):
    def test_put_and_read_option(self):
        url = reverse("simple_options:option-detail", args=["alpha"])
        response = self.client.put(url, {"value": {"enabled": True}}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["key"], "alpha")
        self.assertEqual(response.data["value"], {"enabled": True})

    def test_string_value_is_not_json_encoded(self):
        url = reverse("simple_options:option-detail", args=["title"])
        self.client.put(url, {"value": "My site"}, format="json")

        self.assertFalse(Option.objects.get(key="title").is_json)
        self.assertEqual(self.client.get(url).data["value"], "My site")

    def test_missing_option_returns_404(self):
        url = reverse("simple_options:option-detail", args=["missing"])
        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_oversized_key_returns_400(self):
        url = reverse("simple_options:option-detail", args=["k" * 256])
        response = self.client.put(url, {"value": 1}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_removes_option(self):
        OptionStore().set("temp", "old")
        url = reverse("simple_options:option-detail", args=["temp"])

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_list_filters_on_autoload(self):
        store = OptionStore()
        store.set("a", 1, autoload=True)
        store.set("b", "two")
        url = reverse("simple_options:option-list")

        response = self.client.get(url, {"autoload": "true"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["results"], {"a": 1})

        response = self.client.get(url)
        self.assertEqual(response.data["count"], 2)

        response = self.client.get(url, {"autoload": "maybe"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_batch_sets_all_options(self):
        url = reverse("simple_options:option-batch")
        payload = {"options": {"alpha": "1", "beta": [1, 2]}, "autoload": True}
        response = self.client.post(url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["success"])
        self.assertEqual(OptionStore().get_all(True), {"alpha": "1", "beta": [1, 2]})

    def test_empty_batch_is_rejected(self):
        url = reverse("simple_options:option-batch")
        response = self.client.post(url, {"options": {}}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_database_failure_returns_503(self):
        url = reverse("simple_options:option-detail", args=["alpha"])
        with mock.patch.object(OptionStore, "_queryset", side_effect=OperationalError("gone")):
            response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_write_racing_delete_returns_409(self):
        OptionStore().set("alpha", 1)
        url = reverse("simple_options:option-detail", args=["alpha"])

        # The row disappears between the existence check and the update.
        with mock.patch.object(OptionStore, "_update", return_value=0):
            response = self.client.put(url, {"value": 2}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["detail"], "Option was deleted while being written")

    def test_table_is_checked_once_per_process(self):
        url = reverse("simple_options:option-detail", args=["a"])
        self.client.put(url, {"value": "x"}, format="json")

        with mock.patch.object(schema, "option_table_exists", wraps=schema.option_table_exists) as check:
            with self.assertNumQueries(2):
                self.client.get(url)
                self.client.get(url)

        check.assert_not_called()
