from rest_framework import serializers

from custody.models import BLOOD_TYPE_CHOICES
from custody.serializers.inventory import KindField, normalise_rh


class HospitalQuerySerializer(serializers.Serializer):
    hospitalId = serializers.IntegerField(required=False, min_value=1)


class NeededQuerySerializer(HospitalQuerySerializer):
    # surplus: only combinations the caller holds in surplus
    scope = serializers.ChoiceField(choices=['surplus', 'all'], required=False, default='surplus')


class TransferSerializer(serializers.Serializer):
    fromHospitalId = serializers.IntegerField(min_value=1)
    toHospitalId = serializers.IntegerField(min_value=1)
    type = KindField()
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPE_CHOICES)
    rh = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    amount = serializers.IntegerField(min_value=1)
    units = serializers.IntegerField(min_value=1, required=False, default=1)

    def validate_rh(self, v):
        return normalise_rh(v) or ''
