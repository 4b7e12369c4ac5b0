"""
Order processing example demonstrating business workflow with eventline.

Validate -> Charge -> Notify, under STRICT fault tolerance: a declined
charge stops the chain before any notification goes out.
"""

import logging

from eventline import EventChain, ChainableEvent, EventContext, Result, Middleware, FaultTolerance


# Events
class Validate(ChainableEvent):
    def execute(self, context):
        order = context.get('order', None)

        if not order:
            return Result.fail("order_missing")

        if not order.get('items'):
            return Result.fail("order_has_no_items")

        if not order.get('customer_id'):
            return Result.fail("customer_id_missing")

        total = sum(item['price'] * item['quantity'] for item in order['items'])
        context.set('validated', True)
        context.set('total', round(total, 2))
        return Result.ok()


class Charge(ChainableEvent):
    critical = True

    def execute(self, context):
        total = context.get('total')
        balance = context.get('balance', 0)

        if balance < total:
            return Result.fail("insufficient_funds")

        context.set('balance', round(balance - total, 2))
        context.set('payment_id', f"PAY-{context.get('order')['id']}")
        return Result.ok()


class Notify(ChainableEvent):
    def execute(self, context):
        order = context.get('order')
        outbox = context.get('outbox', [])
        outbox.append({
            'to': order.get('customer_email', 'customer@example.com'),
            'payment_id': context.get('payment_id'),
            'total': context.get('total'),
        })
        context.set('outbox', outbox)
        return Result.ok()


# Middleware
class OrderLoggingMiddleware(Middleware):
    def execute(self, event, context, next_callable):
        order_id = context.get('order', {}).get('id', 'N/A')

        print(f"[{order_id}] -> {event.name}")
        result = next_callable(context)

        if not result.success:
            print(f"[{order_id}] x {event.name} failed: {result.error}")

        return result


def build_order_chain():
    return (EventChain(fault_tolerance=FaultTolerance.STRICT, name='orders')
        .add_event(Validate())
        .add_event(Charge())
        .add_event(Notify())
        .use_middleware(OrderLoggingMiddleware()))


def create_sample_order(order_id, customer_id):
    return {
        'id': order_id,
        'customer_id': customer_id,
        'customer_email': f'{customer_id.lower()}@example.com',
        'items': [
            {'name': 'Widget', 'price': 19.99, 'quantity': 2},
            {'name': 'Gadget', 'price': 49.99, 'quantity': 1},
        ]
    }


def main():
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    print("=" * 60)
    print("eventline Order Processing Example")
    print("=" * 60)

    chain = build_order_chain()
    print(f"\nChain: {chain}\n")

    orders = [
        (create_sample_order('ORD-001', 'CUST-123'), 500.00),
        (create_sample_order('ORD-002', 'CUST-456'), 10.00),
    ]

    for order, balance in orders:
        result = chain.execute(EventContext({'order': order, 'balance': balance}))

        if result.success:
            print(f"\nOrder {order['id']} processed, payment {result.context.get('payment_id')}\n")
        else:
            print(f"\nOrder {order['id']} failed: {[f.to_dict() for f in result.failures]}\n")


if __name__ == "__main__":
    main()
