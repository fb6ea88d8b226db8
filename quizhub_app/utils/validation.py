# File: quizhub_app/utils/validation.py
from pydantic import ValidationError as PydanticValidationError

from ..core.error_handlers import ValidationError


def parse_payload(model_cls, data):
    """Validate ``data`` against a pydantic model; errors become ``ValidationError``."""
    try:
        return model_cls.model_validate(data or {})
    except PydanticValidationError as exc:
        errors = [
            {'field': '.'.join(str(part) for part in error['loc']), 'message': error['msg']}
            for error in exc.errors(include_url=False, include_context=False, include_input=False)
        ]
        raise ValidationError('Invalid request payload', errors=errors) from None
