# Overview: Location-scoped outbound events, published only after the writing transaction commits.

"""
Outbound notifications for live dashboards, printers and other collaborators.

Services never send signals directly. They call queue_event() inside their
unit of work; the queued events are held on the SQLAlchemy session and sent
from the after_commit hook. A rolled-back unit of work discards its queue,
so subscribers only ever hear about committed state.

Delivery is best effort: a subscriber that raises is logged and skipped, and
it can never undo the commit that produced the event.

Subscribing:

    from tillbook.events import sale_completed

    @sale_completed.connect
    def print_receipt(app, **event):
        ...  # event["sale_id"], event["channel"] == "location-3", ...
"""

from __future__ import annotations

from blinker import Namespace
from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session


_signals = Namespace()

sale_completed = _signals.signal("sale-completed")
sale_voided = _signals.signal("sale-voided")
inventory_updated = _signals.signal("inventory-updated")

_PENDING_KEY = "tillbook.pending_events"


def location_channel(location_id: int) -> str:
    return f"location-{location_id}"


def queue_event(session: Session, signal, location_id: int, **payload) -> None:
    """Hold an event on the session until its transaction commits."""
    payload["location_id"] = location_id
    payload["channel"] = location_channel(location_id)
    session.info.setdefault(_PENDING_KEY, []).append((signal, payload))


def pending_events(session: Session) -> list:
    return list(session.info.get(_PENDING_KEY, []))


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session: Session) -> None:
    queued = session.info.pop(_PENDING_KEY, None)
    if not queued:
        return

    app = current_app._get_current_object()
    for signal, payload in queued:
        for receiver in list(signal.receivers_for(app)):
            try:
                receiver(app, **payload)
            except Exception:
                app.logger.exception("Subscriber %r failed for %s event", receiver, signal.name)


@event.listens_for(Session, "after_rollback")
def _discard_on_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
