"""
Order endpoints. Object-level routes go through ``authorize_resource``.
"""

from typing import Any, Dict

from flask import Blueprint, g, jsonify

from bola_lab.auth.authorization import Action, AuthorizationDecision, ResourceType
from bola_lab.auth.decorators import authorize_resource, not_found_response
from bola_lab.auth.identity import require_subject
from bola_lab.blueprints.validation import OrderCreateSchema, OrderStatusSchema, validate_request_data
from bola_lab.events.taxonomy import EventKey
from bola_lab.services import get_services

VULNERABLE_NOTES = {
    Action.READ: 'VULNERABLE: this endpoint does not verify resource ownership (BOLA)',
    Action.UPDATE: 'VULNERABLE: modification without ownership verification',
    Action.DELETE: 'VULNERABLE: deletion without ownership verification',
}


def serialize_order(order: Dict[str, Any], detailed: bool = True) -> Dict[str, Any]:
    payload = {
        'id': order['id'],
        'product': order['product'],
        'amount': order['amount'],
        'status': order['status'],
        'createdAt': order['created_at'],
    }
    if detailed:
        payload.update({
            'creditCard': order.get('credit_card'),
            'address': order.get('address'),
            'phone': order.get('phone'),
        })
    return payload


def _annotate(body: Dict[str, Any], decision: AuthorizationDecision) -> Dict[str, Any]:
    if get_services().variant == 'vulnerable':
        body['security_note'] = VULNERABLE_NOTES[decision.action]
    return body


def create_orders_blueprint() -> Blueprint:
    orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')

    @orders_bp.route('', methods=['GET'])
    @require_subject
    def list_orders():
        orders = get_services().store.list_orders(g.subject.id)
        return jsonify({
            'success': True,
            'count': len(orders),
            'orders': [serialize_order(order, detailed=False) for order in orders],
        })

    @orders_bp.route('', methods=['POST'])
    @require_subject
    @validate_request_data(OrderCreateSchema)
    def create_order():
        services = get_services()
        data = g.validated_data
        order = services.store.create_order(
            g.subject.id,
            data['product'],
            data['amount'],
            credit_card=data.get('credit_card'),
            address=data.get('address'),
            phone=data.get('phone')
        )
        services.emitter.emit(EventKey.ORDER_CREATED, payload={
            'subject': g.subject,
            'resource_type': ResourceType.ORDER.value,
            'resource_id': order['id'],
            'owner_id': g.subject.id,
            'message': f"User {g.subject.id} created order {order['id']}",
            'amount': order['amount'],
        })
        return jsonify({
            'success': True,
            'message': 'Order created successfully',
            'orderId': order['id'],
        }), 201

    @orders_bp.route('/<resource_id>', methods=['GET'])
    @authorize_resource(ResourceType.ORDER, Action.READ)
    def get_order(decision: AuthorizationDecision):
        order = get_services().store.get_order(decision.resource.id)
        if order is None:
            return not_found_response()
        payload = serialize_order(order)
        if get_services().variant == 'vulnerable':
            payload['userId'] = order['user_id']
        return jsonify(_annotate({'success': True, 'order': payload}, decision))

    @orders_bp.route('/<resource_id>', methods=['PUT'])
    @authorize_resource(ResourceType.ORDER, Action.UPDATE)
    @validate_request_data(OrderStatusSchema)
    def update_order(decision: AuthorizationDecision):
        status = g.validated_data['status']
        if not get_services().store.update_order_status(decision.resource.id, status):
            return not_found_response()
        return jsonify(_annotate({
            'success': True,
            'message': 'Order updated successfully',
            'status': status,
        }, decision))

    @orders_bp.route('/<resource_id>', methods=['DELETE'])
    @authorize_resource(ResourceType.ORDER, Action.DELETE)
    def delete_order(decision: AuthorizationDecision):
        if not get_services().store.delete_order(decision.resource.id):
            return not_found_response()
        return jsonify(_annotate({
            'success': True,
            'message': 'Order deleted successfully',
        }, decision))

    return orders_bp


__all__ = ['create_orders_blueprint', 'serialize_order']
