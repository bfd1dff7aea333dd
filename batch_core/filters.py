# batch_core/filters.py
import django_filters as df

from .choices import BatchStatus
from .models import Batch


class BatchFilter(df.FilterSet):
    status = df.MultipleChoiceFilter(choices=BatchStatus.choices)
    product = df.NumberFilter(field_name="product_id")
    product_code = df.CharFilter(field_name="product__code", lookup_expr="iexact")
    batch_number = df.CharFilter(field_name="batch_number", lookup_expr="icontains")
    planned_start = df.DateFromToRangeFilter()

    class Meta:
        model = Batch
        fields = ["status", "product", "product_code", "batch_number", "planned_start", "is_archived"]
