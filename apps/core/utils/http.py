import dataclasses
from enum import Enum

from django.core.serializers.json import DjangoJSONEncoder
from django.http import JsonResponse


class ReportJSONEncoder(DjangoJSONEncoder):
    """Serializes report view-models: dataclasses, enums, Decimals and dates."""

    def default(self, o):
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            return dataclasses.asdict(o)
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def report_response(payload, status=200):
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        payload = dataclasses.asdict(payload)
    return JsonResponse(payload, encoder=ReportJSONEncoder, status=status)


def validation_error_response(exc, status=400):
    if hasattr(exc, 'message_dict'):
        errors = exc.message_dict
    else:
        errors = {'__all__': exc.messages}
    return JsonResponse({'errors': errors}, status=status)


def form_error_response(form, status=400):
    return JsonResponse({'errors': form.errors.get_json_data()}, status=status)
