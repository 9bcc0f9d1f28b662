"""
Inventory endpoints.

Every endpoint is scoped to the caller's hospital.  ``hospitalId`` may be
passed explicitly but is only ever checked against the session, never
trusted on its own.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from custody.authentication import session_of
from custody.serializers.inventory import (
    EntryQuerySerializer,
    EntryWriteSerializer,
    KindQuerySerializer,
    SearchQuerySerializer,
)
from custody.services import inventory


def _entries(records) -> list[dict]:
    return [r.as_dict() for r in records]


@api_view(['GET'])
def list_inventory(request):
    q = EntryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    records = inventory.list_entries(session_of(request), q.validated_data.get('hospitalId'), q.to_filters())
    return Response({'ok': True, 'entries': _entries(records)})


@api_view(['POST'])
def create_entry(request, kind):
    s = EntryWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = inventory.create_entry(session_of(request), kind, s.to_fields(), s.validated_data.get('hospitalId'))
    return Response({'ok': True, 'entry': record.as_dict()}, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
def update_entry(request, kind, bag_id):
    s = EntryWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = inventory.update_entry(session_of(request), kind, bag_id, s.to_fields())
    return Response({'ok': True, 'entry': record.as_dict()})


@api_view(['POST'])
def soft_delete_entry(request, kind, bag_id):
    record = inventory.soft_delete(session_of(request), kind, bag_id)
    return Response({'ok': True, 'entry': record.as_dict()})


@api_view(['POST'])
def restore_entry(request, kind, bag_id):
    record = inventory.restore(session_of(request), kind, bag_id)
    return Response({'ok': True, 'entry': record.as_dict()})


@api_view(['GET'])
def list_deleted(request):
    q = KindQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    records = inventory.list_deleted(session_of(request), q.validated_data.get('type'))
    return Response({'ok': True, 'entries': _entries(records)})


@api_view(['GET'])
def search_inventory(request):
    q = SearchQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    records = inventory.search_entries(session_of(request), q.validated_data['q'], q.validated_data.get('type'))
    return Response({'ok': True, 'entries': _entries(records)})


@api_view(['GET'])
def inventory_summary(request):
    hospital_id = request.query_params.get('hospitalId')
    summary = inventory.inventory_summary(session_of(request), hospital_id)
    return Response({'ok': True, 'summary': summary.as_dict()})
