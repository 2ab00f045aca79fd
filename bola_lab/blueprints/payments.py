"""
Payment endpoints. Bank accounts are masked on the secure variant.
"""

import math
from typing import Any, Dict

from flask import Blueprint, g, jsonify

from bola_lab.auth.authorization import Action, AuthorizationDecision, ResourceRef, ResourceType
from bola_lab.auth.decorators import authorize_resource, not_found_response, require_role
from bola_lab.auth.identity import require_subject
from bola_lab.blueprints.validation import PaginationSchema, PaymentCreateSchema, validate_request_data
from bola_lab.events.taxonomy import EventKey
from bola_lab.services import get_services


def mask_account(account: str) -> str:
    return f"****{(account or '')[-4:]}"


def serialize_payment(payment: Dict[str, Any], masked: bool) -> Dict[str, Any]:
    account = payment.get('bank_account') or ''
    payload = {
        'id': payment['id'],
        'orderId': payment['order_id'],
        'amount': payment['amount'],
        'bankAccount': mask_account(account) if masked else account,
        'status': payment['status'],
        'createdAt': payment['created_at'],
    }
    if not masked:
        payload['routingNumber'] = payment.get('routing_number')
    return payload


def _is_vulnerable() -> bool:
    return get_services().variant == 'vulnerable'


def create_payments_blueprint() -> Blueprint:
    payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')

    @payments_bp.route('', methods=['GET'])
    @require_subject
    def list_payments():
        payments = get_services().store.list_payments(g.subject.id)
        masked = not _is_vulnerable()
        return jsonify({
            'success': True,
            'count': len(payments),
            'payments': [serialize_payment(payment, masked) for payment in payments],
        })

    @payments_bp.route('', methods=['POST'])
    @require_subject
    @validate_request_data(PaymentCreateSchema)
    def create_payment():
        services = get_services()
        data = g.validated_data

        order_ref = ResourceRef(ResourceType.ORDER, data['order_id'])
        decision = services.engine.authorize(g.subject, order_ref, Action.READ)
        services.emitter.emit_decision(decision)
        if not decision.allowed:
            return not_found_response()

        payment = services.store.create_payment(
            g.subject.id,
            data['order_id'],
            data['amount'],
            bank_account=data['bank_account'],
            routing_number=data.get('routing_number')
        )
        services.emitter.emit(EventKey.PAYMENT_CREATED, payload={
            'subject': g.subject,
            'resource_type': ResourceType.PAYMENT.value,
            'resource_id': payment['id'],
            'owner_id': g.subject.id,
            'message': f"User {g.subject.id} created payment {payment['id']} for order {data['order_id']}",
            'orderId': data['order_id'],
            'amount': data['amount'],
        })
        return jsonify({
            'success': True,
            'message': 'Payment created successfully',
            'paymentId': payment['id'],
        }), 201

    @payments_bp.route('/admin/all', methods=['GET'])
    @require_role()
    @validate_request_data(PaginationSchema, location='args')
    def list_all_payments():
        services = get_services()
        page, limit = g.validated_data['page'], g.validated_data['limit']
        payments = services.store.list_all_payments(page, limit)
        total = services.store.count_payments()

        services.emitter.emit(EventKey.ADMIN_PAYMENTS_ACCESS, payload={
            'subject': g.subject,
            'resource_type': ResourceType.PAYMENT.value,
            'message': f"Admin {g.subject.id} listed all payments",
            'totalPayments': total,
        })

        serialized = []
        for payment in payments:
            item = serialize_payment(payment, masked=True)
            item.update({'userId': payment['user_id'], 'userEmail': payment.get('user_email')})
            serialized.append(item)

        return jsonify({
            'success': True,
            'count': len(payments),
            'total': total,
            'page': page,
            'totalPages': math.ceil(total / limit),
            'payments': serialized,
        })

    @payments_bp.route('/<resource_id>', methods=['GET'])
    @authorize_resource(ResourceType.PAYMENT, Action.READ)
    def get_payment(decision: AuthorizationDecision):
        payment = get_services().store.get_payment(decision.resource.id)
        if payment is None:
            return not_found_response()

        if _is_vulnerable():
            payload = serialize_payment(payment, masked=False)
            payload['userId'] = payment['user_id']
            note = 'VULNERABLE: bank data returned without ownership verification (BOLA)'
        else:
            payload = serialize_payment(payment, masked=True)
            note = 'Protected information: only authorized data is returned'
        return jsonify({'success': True, 'payment': payload, 'security_note': note})

    return payments_bp


__all__ = ['create_payments_blueprint', 'serialize_payment', 'mask_account']
