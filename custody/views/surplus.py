"""
Surplus and transfer endpoints.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from custody.authentication import session_of
from custody.serializers.surplus import HospitalQuerySerializer, NeededQuerySerializer, TransferSerializer
from custody.services import surplus


def _hospital_param(request):
    q = HospitalQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return q.validated_data.get('hospitalId')


@api_view(['GET'])
def hospital_surplus(request):
    lines = surplus.surplus_for(session_of(request), _hospital_param(request))
    return Response({'ok': True, 'surplus': [line.as_dict() for line in lines]})


@api_view(['GET'])
def hospitals_needing(request):
    q = NeededQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    session, hospital_id = session_of(request), q.validated_data.get('hospitalId')
    if q.validated_data['scope'] == 'all':
        lines = surplus.hospitals_needing(session, hospital_id)
    else:
        lines = surplus.hospitals_needing_surplus(session, hospital_id)
    return Response({'ok': True, 'hospitals': [line.as_dict() for line in lines]})


@api_view(['GET'])
def surplus_alerts(request):
    alerts = surplus.surplus_alerts(session_of(request))
    return Response({'ok': True, 'alerts': [a.as_dict() for a in alerts]})


@api_view(['GET'])
def surplus_summary(request):
    summary = surplus.surplus_summary(session_of(request), _hospital_param(request))
    return Response({'ok': True, 'summary': summary.as_dict()})


@api_view(['POST'])
def record_transfer(request):
    s = TransferSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    record = surplus.record_transfer(
        session_of(request),
        vd['fromHospitalId'],
        vd['toHospitalId'],
        vd['type'],
        vd['bloodType'],
        vd.get('rh', ''),
        vd['amount'],
        vd.get('units', 1),
    )
    return Response({'ok': True, 'transfer': record.as_dict()}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def transfer_history(request):
    records = surplus.transfer_history(session_of(request), _hospital_param(request))
    return Response({'ok': True, 'transfers': [r.as_dict() for r in records]})
