"""
Response serializers — ORM 对象 / service 结果 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
"""


def serialize_order_transmitted(order):
    """Serialize order after transmission."""
    response = {
        'order_id': order.id,
        'status': order.status,
        'requisition_status': order.requisition_status,
        'updated_at': order.updated_at.isoformat(),
    }
    if order.requisition_status == 'pending':
        response['message'] = 'Order transmitted. Requisition download queued.'
    else:
        response['message'] = 'Order transmitted.'
    return response


def serialize_compendium_files(result):
    return {
        'file_name': result['file_name'],
        'retrieve_uri': result['retrieve_uri'],
        'files': result['files'],
    }


def serialize_background_service(active):
    return {
        'name': 'Quest_Lab_Hub',
        'active': bool(active),
    }
