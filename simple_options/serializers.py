from rest_framework import serializers

from simple_options.encoding import validate_key
from simple_options.exceptions import InvalidOptionKey


class OptionSerializer(serializers.Serializer):
    """Serializer for a single option as returned to clients."""

    key = serializers.CharField()
    value = serializers.JSONField(allow_null=True)


class OptionWriteSerializer(serializers.Serializer):
    """Serializer for writing/updating an option value."""

    value = serializers.JSONField(
        allow_null=True,
        help_text="The value to store. Strings are stored verbatim, anything else as JSON.",
    )
    autoload = serializers.BooleanField(
        default=False,
        help_text="Whether the option belongs to the autoload partition.",
    )


class OptionBatchSerializer(serializers.Serializer):
    """Serializer for setting several options at once."""

    options = serializers.DictField(
        child=serializers.JSONField(allow_null=True),
        help_text="Mapping of option key to value",
    )
    autoload = serializers.BooleanField(
        default=False,
        help_text="Autoload flag applied to every option in the batch.",
    )

    def validate_options(self, options):
        if not options:
            raise serializers.ValidationError("At least one option is required")
        for key in options:
            try:
                validate_key(key)
            except InvalidOptionKey as e:
                raise serializers.ValidationError(str(e))
        return options


class OptionListResponseSerializer(serializers.Serializer):
    count = serializers.IntegerField(help_text="Number of options returned")
    results = serializers.DictField(
        child=serializers.JSONField(allow_null=True),
        help_text="Mapping of option key to decoded value",
    )


class OptionBatchResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField(help_text="True only if every option was stored")
