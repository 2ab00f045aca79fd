"""
Request body and query validation with marshmallow schemas.

Validation failures raise ``InputError`` (400) carrying the field messages;
they are input problems, never security events.
"""

from functools import wraps
from typing import Callable, Type

import structlog
from flask import g, request
from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate

from bola_lab.auth.exceptions import ErrorCode, InputError
from bola_lab.data.store import ORDER_STATUSES

logger = structlog.get_logger(__name__)


class BaseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class LoginSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=1))


class RegisterSchema(BaseSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=6))
    name = fields.String(required=True, validate=validate.Length(min=1, max=100))


class OrderCreateSchema(BaseSchema):
    product = fields.String(required=True, validate=validate.Length(min=1, max=200))
    amount = fields.Float(required=True, validate=validate.Range(min=0.01, max=999999))
    credit_card = fields.String(data_key='creditCard', load_default=None)
    address = fields.String(load_default=None)
    phone = fields.String(load_default=None)


class OrderStatusSchema(BaseSchema):
    status = fields.String(required=True, validate=validate.OneOf(ORDER_STATUSES))


class UserUpdateSchema(BaseSchema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    email = fields.Email(required=True)


class PaymentCreateSchema(BaseSchema):
    order_id = fields.Integer(data_key='orderId', required=True, strict=True,
                              validate=validate.Range(min=1))
    amount = fields.Float(required=True, validate=validate.Range(min=0.01, max=999999))
    bank_account = fields.String(data_key='bankAccount', required=True,
                                 validate=validate.Length(min=4, max=34))
    routing_number = fields.String(data_key='routingNumber', load_default=None)


class PaginationSchema(BaseSchema):
    page = fields.Integer(load_default=1, validate=validate.Range(min=1, max=10000))
    limit = fields.Integer(load_default=10, validate=validate.Range(min=1, max=100))


def validate_request_data(schema_class: Type[Schema], location: str = 'json') -> Callable:
    """Load the request body (or query string) into ``g.validated_data``."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            if location == 'args':
                data = request.args.to_dict()
            else:
                data = request.get_json(silent=True)
                if not isinstance(data, dict):
                    raise InputError(
                        "Request body must be a JSON object",
                        error_code=ErrorCode.INPUT_INVALID_BODY
                    )

            try:
                g.validated_data = schema_class().load(data)
            except ValidationError as e:
                logger.info(
                    "Request validation failed",
                    endpoint=request.endpoint,
                    validation_errors=e.messages
                )
                raise InputError(
                    "Request validation failed",
                    errors=e.messages,
                    error_code=ErrorCode.INPUT_INVALID_BODY,
                    user_message="Request validation failed"
                ) from e
            return func(*args, **kwargs)

        return wrapper
    return decorator


__all__ = [
    'LoginSchema',
    'RegisterSchema',
    'OrderCreateSchema',
    'OrderStatusSchema',
    'UserUpdateSchema',
    'PaymentCreateSchema',
    'PaginationSchema',
    'validate_request_data',
]
