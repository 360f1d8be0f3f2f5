# queuedesk/app/api.py
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from .db import init_db
from .errors import InvalidTransition, QueueFull, UnknownService, UnknownTicket
from .scheduler import TickScheduler
from .schemas import CheckInIn, Feedback, RecommendIn, ResolveIn, ServicesIn, TransferIn
from .service import QueueStateService

app = FastAPI(title="QueueDesk API")

queue_service = QueueStateService()
scheduler = TickScheduler(queue_service)


def get_service() -> QueueStateService:
    return queue_service


# Startup: init DB and start ticking
@app.on_event("startup")
def on_startup():
    init_db()
    scheduler.start()


@app.on_event("shutdown")
def on_shutdown():
    scheduler.stop(timeout=10)


def _tick_payload(result):
    return {
        "newly_serviced": [e.ticket_number for e in result.newly_serviced],
        "newly_assigned": [
            {"ticket": e.ticket_number, "counter": e.assigned_counter} for e in result.newly_assigned
        ],
        "unroutable": [e.ticket_number for e in result.unroutable],
        "queue": result.queue,
    }


# ---------------------------
# Catalog
# ---------------------------
@app.get("/api/services")
def list_services(svc: QueueStateService = Depends(get_service)):
    return {
        "categories": {
            category: [{"name": i.name, "avg_minutes": i.avg_minutes, "counter_class": i.counter_class}
                       for i in items]
            for category, items in svc.catalog.categories().items()
        },
        "counters": [
            {"name": c.name, "service_classes": sorted(c.service_classes)} for c in svc.catalog.counters
        ],
    }


# ---------------------------
# Check-in (front door)
# ---------------------------
@app.post("/api/check-in", status_code=201)
def check_in(p: CheckInIn, svc: QueueStateService = Depends(get_service)):
    try:
        entry = svc.check_in(p.name, p.phone, p.services)
    except QueueFull:
        raise HTTPException(status_code=409, detail="queue is full, please try again later")
    except UnknownService as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": entry.id, "ticket_number": entry.ticket_number, "status": entry.status}


@app.post("/api/recommend")
def recommend_service(p: RecommendIn, svc: QueueStateService = Depends(get_service)):
    # null recommendation means "pick by hand"
    return {"recommendation": svc.recommend(p.issue_description)}


@app.put("/api/tickets/{ticket}/services")
def select_services(ticket: str, p: ServicesIn, svc: QueueStateService = Depends(get_service)):
    try:
        return svc.select_services(ticket, p.services)
    except UnknownTicket:
        raise HTTPException(status_code=404, detail="ticket not found")
    except UnknownService as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))


# ---------------------------
# Status lookup
# ---------------------------
@app.get("/api/tickets/{ticket}")
def get_ticket(ticket: str, svc: QueueStateService = Depends(get_service)):
    try:
        return svc.find(ticket)
    except UnknownTicket:
        raise HTTPException(status_code=404, detail="ticket not found")


@app.get("/api/queue")
def list_queue(svc: QueueStateService = Depends(get_service)):
    return svc.active_queue()


@app.get("/api/serviced")
def list_serviced(limit: int = 200, svc: QueueStateService = Depends(get_service)):
    return svc.serviced()[-limit:]


# ---------------------------
# Staff actions
# ---------------------------
@app.post("/api/tickets/{ticket}/resolve")
def resolve_ticket(ticket: str, p: ResolveIn, svc: QueueStateService = Depends(get_service)):
    try:
        return svc.resolve(ticket, p.notes, user=p.user)
    except UnknownTicket:
        raise HTTPException(status_code=404, detail="ticket not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/api/tickets/{ticket}/transfer")
def transfer_ticket(ticket: str, p: TransferIn, svc: QueueStateService = Depends(get_service)):
    try:
        return svc.transfer(ticket, p.staff_id, user=p.user)
    except UnknownTicket:
        raise HTTPException(status_code=404, detail="ticket not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/api/tickets/{ticket}/feedback")
def leave_feedback(ticket: str, p: Feedback, svc: QueueStateService = Depends(get_service)):
    try:
        return svc.add_feedback(ticket, p)
    except UnknownTicket:
        raise HTTPException(status_code=404, detail="ticket not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))


# ---------------------------
# Engine, estimate, analytics
# ---------------------------
@app.post("/api/tick")
def run_tick(svc: QueueStateService = Depends(get_service)):
    return _tick_payload(svc.run_tick())


@app.get("/api/wait-time")
def wait_time(active_staff: Optional[int] = Query(None, ge=1), svc: QueueStateService = Depends(get_service)):
    return svc.estimate_wait(active_staff)


@app.get("/api/analytics")
def analytics(svc: QueueStateService = Depends(get_service)):
    return svc.analytics()
