"""Deal pipeline ordering"""
import logging
from decimal import Decimal
from django.db import transaction
from django.db.models import Count, Max, Sum
from rest_framework import serializers
from .models import Deal

logger = logging.getLogger(__name__)


def next_position(stage):
    """Position that appends a deal at the end of a stage"""
    last = Deal.objects.filter(stage=stage).aggregate(last=Max('position'))['last']
    return 0 if last is None else last + 1


def _renumber(deals):
    """Give an ordered list of deals contiguous positions from zero, saving only what changed"""
    for index, deal in enumerate(deals):
        if deal.position != index:
            deal.position = index
            deal.save(update_fields=['position', 'stage', 'updated_at'])


def move_deal(deal, stage, position):
    """
    Move a deal to a stage and position

    Within one stage the deal is reordered; across stages it leaves the
    source column and is inserted into the target at the requested position
    (clamped to the column length). Both columns end up numbered 0..n-1.
    Returns (deal, moved) where moved is False for a move onto the same slot.
    """
    if stage not in dict(Deal.STAGE_CHOICES):
        raise serializers.ValidationError({'stage': f"Unknown stage '{stage}'"})
    if position < 0:
        raise serializers.ValidationError({'position': 'Position cannot be negative'})

    with transaction.atomic():
        # Lock the deal row first; its current stage decides which columns to lock
        source_stage = Deal.objects.select_for_update().values_list('stage', flat=True).get(pk=deal.pk)
        locked = list(Deal.objects.select_for_update().filter(stage__in={source_stage, stage}).order_by('position', 'id'))
        current = next(d for d in locked if d.pk == deal.pk)

        target = [d for d in locked if d.stage == stage and d.pk != current.pk]
        position = min(position, len(target))
        if current.stage == stage:
            source_index = [d.pk for d in locked if d.stage == stage].index(current.pk)
            if source_index == position:
                return current, False

        source_stage = current.stage
        current.stage = stage
        target.insert(position, current)
        # Position -1 forces a save of the moved deal's new stage
        current.position = -1
        _renumber(target)
        if source_stage != stage:
            _renumber([d for d in locked if d.stage == source_stage and d.pk != current.pk])

    logger.info(f"Deal {current.pk} moved to {stage}[{position}]")
    return current, True


def pipeline_board(queryset=None):
    """Every stage with its ordered deals, count and total value"""
    queryset = queryset if queryset is not None else Deal.objects.select_related('contact', 'owner')
    deals = list(queryset.order_by('position', 'id'))
    totals = {
        row['stage']: row
        for row in queryset.order_by().values('stage').annotate(count=Count('id'), total=Sum('value'))
    }
    board = []
    for stage, label in Deal.STAGE_CHOICES:
        board.append({
            'stage': stage,
            'label': label,
            'deals': [d for d in deals if d.stage == stage],
            'count': totals.get(stage, {}).get('count', 0),
            'total_value': totals.get(stage, {}).get('total') or Decimal('0.00'),
        })
    return board
