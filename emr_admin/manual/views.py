from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr_admin.core.utils import create_audit_log
from .models import ManualSection
from .serializers import ManualSectionSerializer


def _group_by_tab(sections):
    labels = dict(ManualSection.TAB_CHOICES)
    grouped = {}
    for section in sections:
        grouped.setdefault(section['tab'], []).append(section)
    return [
        {'tab': tab, 'label': labels[tab], 'sections': grouped[tab]}
        for tab, _ in ManualSection.TAB_CHOICES
        if tab in grouped
    ]


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def section_list_create(request):
    """Manual sections grouped by tab; SaaS owners may add sections"""
    if request.method == 'GET':
        queryset = ManualSection.objects.all()
        if not request.user.is_saas_owner:
            queryset = queryset.filter(is_published=True)

        tab = request.query_params.get('tab', None)
        if tab:
            queryset = queryset.filter(tab=tab)

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(title__icontains=search) | Q(body__icontains=search))

        sections = ManualSectionSerializer(queryset, many=True).data
        return Response({'tabs': _group_by_tab(sections), 'count': len(sections)})

    if not request.user.is_saas_owner:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = ManualSectionSerializer(data=request.data)
    if serializer.is_valid():
        section = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='ManualSection',
            object_id=section.id,
            object_name=section.title
        )
        return Response(ManualSectionSerializer(section).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def section_detail(request, slug):
    queryset = ManualSection.objects.all()
    if not request.user.is_saas_owner:
        queryset = queryset.filter(is_published=True)
    section = get_object_or_404(queryset, slug=slug)

    if request.method == 'GET':
        return Response(ManualSectionSerializer(section).data)

    if not request.user.is_saas_owner:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        serializer = ManualSectionSerializer(section, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        section_id = section.id
        title = section.title
        section.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='ManualSection',
            object_id=section_id,
            object_name=title
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
