"""
Request shapes for the inventory endpoints.

These serializers only translate the camelCase wire format into the
keyword arguments the inventory service expects.  Kind-specific rules
(Rh required for red cells and platelets, ignored for plasma) are
enforced by the service so that every caller gets them.
"""
import bleach
from rest_framework import serializers

from custody.errors import ValidationFailed
from custody.models import BLOOD_TYPE_CHOICES
from custody.services.inventory import EXPIRATION_CHOICES, EntryFilters, resolve_kind

RH_ALIASES = {
    '+': '+',
    '-': '-',
    'pos': '+',
    'positive': '+',
    'neg': '-',
    'negative': '-',
}


def normalise_rh(value):
    """Map Rh spellings onto ``+``/``-``; ``None`` when absent."""
    if value is None:
        return None
    # an unescaped '+' in a query string arrives as a space
    if value == ' ':
        return '+'
    value = value.strip().lower()
    if not value:
        return None
    if value not in RH_ALIASES:
        raise serializers.ValidationError("rh must be '+' or '-'.")
    return RH_ALIASES[value]


class KindField(serializers.CharField):
    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            return resolve_kind(value)
        except ValidationFailed as e:
            raise serializers.ValidationError(e.message)


class EntryWriteSerializer(serializers.Serializer):
    donorName = serializers.CharField(max_length=255)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPE_CHOICES)
    rh = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    amount = serializers.IntegerField(min_value=1)
    expirationDate = serializers.DateField()
    hospitalId = serializers.IntegerField(required=False, min_value=1)

    def validate_donorName(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if not v:
            raise serializers.ValidationError('Donor name is required.')
        return v

    def validate_rh(self, v):
        return normalise_rh(v)

    def to_fields(self) -> dict:
        vd = self.validated_data
        return {
            'donor_name': vd['donorName'],
            'blood_type': vd['bloodType'],
            'rh': vd.get('rh'),
            'amount': vd['amount'],
            'expiration_date': vd['expirationDate'],
        }


class EntryQuerySerializer(serializers.Serializer):
    type = KindField(required=False)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPE_CHOICES, required=False)
    rh = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    expiration = serializers.ChoiceField(choices=EXPIRATION_CHOICES, required=False, default='all')
    expiresFrom = serializers.DateField(required=False)
    expiresTo = serializers.DateField(required=False)
    includeInactive = serializers.BooleanField(required=False, default=False)
    hospitalId = serializers.IntegerField(required=False, min_value=1)

    def validate_rh(self, v):
        return normalise_rh(v)

    def validate(self, attrs):
        start, end = attrs.get('expiresFrom'), attrs.get('expiresTo')
        if start and end and start > end:
            raise serializers.ValidationError({'expiresTo': 'expiresTo must not be before expiresFrom.'})
        return attrs

    def to_filters(self) -> EntryFilters:
        vd = self.validated_data
        return EntryFilters(
            kind=vd.get('type'),
            blood_type=vd.get('bloodType'),
            rh=vd.get('rh'),
            expiration=vd.get('expiration') or 'all',
            expires_from=vd.get('expiresFrom'),
            expires_to=vd.get('expiresTo'),
            include_inactive=vd.get('includeInactive', False),
        )


class KindQuerySerializer(serializers.Serializer):
    type = KindField(required=False)


class SearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=100, allow_blank=True)
    type = KindField(required=False)

    def validate_q(self, v):
        return bleach.clean((v or '').strip(), strip=True)
