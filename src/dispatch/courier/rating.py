"""Courier rating — command and handler.

Buyers rate the courier of a delivered order once. The score is kept on the
delivery and folded into the courier's running average, which feeds the
dispatch ranking.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome


@dispatch.command(part_of="Courier")
class RateCourier:
    order_id = Identifier(required=True)
    score = Integer(required=True, min_value=1, max_value=5)


@dispatch.command_handler(part_of=Courier)
class RatingHandler:
    @handle(RateCourier)
    def rate(self, command):
        from dispatch.order.order import Order

        order_repo = current_domain.repository_for(Order)
        try:
            order = order_repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            courier_id = order.record_rating(command.score)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc)

        repo = current_domain.repository_for(Courier)
        try:
            courier = repo.get(courier_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Courier", courier_id)
        courier.rate(order_id=str(order.id), score=command.score)
        order_repo.add(order)
        repo.add(courier)
        return Outcome.success(courier_id=str(courier.id), rating=courier.rating)
