from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.delivery import Delivery
from stockledger.schemas.delivery import DeliveryCreateIn, DeliveryLineOut, DeliveryOut, DeliveryUpdateIn
from stockledger.services.delivery_service import (
    DeliveryHeaderInput,
    DeliveryLineInput,
    create_and_post_delivery,
    create_delivery,
    delivery_lines,
    get_delivery,
    list_delivery_ncrs,
    post_delivery,
    update_draft_delivery,
)

router = APIRouter(prefix="/deliveries", tags=["deliveries"])

_any_role = require_roles("admin", "supervisor", "operator")


def _delivery_out(db: Session, delivery: Delivery) -> DeliveryOut:
    return DeliveryOut(
        id=delivery.id,
        delivery_no=delivery.delivery_no,
        period_id=delivery.period_id,
        location_id=delivery.location_id,
        supplier_id=delivery.supplier_id,
        invoice_no=delivery.invoice_no,
        delivery_note=delivery.delivery_note,
        delivery_date=delivery.delivery_date,
        status=delivery.status,
        total_amount=delivery.total_amount,
        has_variance=delivery.has_variance,
        created_by=delivery.created_by,
        posted_by=delivery.posted_by,
        posted_at=delivery.posted_at,
        lines=[
            DeliveryLineOut(
                id=line.id,
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                period_price=line.period_price,
                price_variance=line.price_variance,
                line_value=line.line_value,
                ncr_id=line.ncr_id,
            )
            for line in delivery_lines(db, delivery.id)
        ],
        ncr_ids=[ncr.id for ncr in list_delivery_ncrs(db, delivery.id)],
    )


def _line_inputs(lines) -> list[DeliveryLineInput]:
    return [DeliveryLineInput(item_id=line.item_id, quantity=line.quantity, unit_price=line.unit_price) for line in lines]


@router.post(
    "",
    response_model=DeliveryOut,
    summary="Create a draft delivery, or create and post it in one step",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def create_delivery_endpoint(
    payload: DeliveryCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    header = DeliveryHeaderInput(
        delivery_date=payload.delivery_date,
        supplier_id=payload.supplier_id,
        invoice_no=payload.invoice_no,
        delivery_note=payload.delivery_note,
    )
    create = create_and_post_delivery if payload.post else create_delivery
    delivery = create(
        db,
        actor=actor,
        location_id=payload.location_id,
        header=header,
        lines=_line_inputs(payload.lines),
    )
    return _delivery_out(db, delivery)


@router.get(
    "/{delivery_id}",
    response_model=DeliveryOut,
    summary="Get delivery",
    responses=error_responses(401, 403, 404, 500),
)
def get_delivery_endpoint(
    delivery_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    return _delivery_out(db, get_delivery(db, actor=actor, delivery_id=delivery_id))


@router.patch(
    "/{delivery_id}",
    response_model=DeliveryOut,
    summary="Edit a draft delivery",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def update_delivery_endpoint(
    delivery_id: str,
    payload: DeliveryUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    current = get_delivery(db, actor=actor, delivery_id=delivery_id)
    header = None
    if any(
        value is not None
        for value in (payload.delivery_date, payload.supplier_id, payload.invoice_no, payload.delivery_note)
    ):
        header = DeliveryHeaderInput(
            delivery_date=payload.delivery_date or current.delivery_date,
            supplier_id=payload.supplier_id if payload.supplier_id is not None else current.supplier_id,
            invoice_no=payload.invoice_no if payload.invoice_no is not None else current.invoice_no,
            delivery_note=payload.delivery_note if payload.delivery_note is not None else current.delivery_note,
        )
    delivery = update_draft_delivery(
        db,
        actor=actor,
        delivery_id=delivery_id,
        header=header,
        lines=_line_inputs(payload.lines) if payload.lines is not None else None,
    )
    return _delivery_out(db, delivery)


@router.post(
    "/{delivery_id}/post",
    response_model=DeliveryOut,
    summary="Post a draft delivery to the ledger",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def post_delivery_endpoint(
    delivery_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    delivery = post_delivery(db, actor=actor, delivery_id=delivery_id)
    return _delivery_out(db, delivery)
