import bleach
from rest_framework import serializers


class CleanCharField(serializers.CharField):
    """CharField that strips markup from free text before it is stored."""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return bleach.clean(value, tags=[], strip=True).strip()


class CommaListField(serializers.ListField):
    """Accepts either a JSON list or a comma separated string ("a, b,c")."""

    def __init__(self, **kwargs):
        kwargs.setdefault('child', serializers.CharField(allow_blank=True))
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = data.split(',')
        items = super().to_internal_value(data)
        return [bleach.clean(i, tags=[], strip=True).strip() for i in items if i and i.strip()]
