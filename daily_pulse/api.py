"""FastAPI application: Slack interaction endpoint plus the admin REST API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import events
from .config import Settings, load_settings
from .exceptions import AuthorizationError, ValidationError
from .schemas import AbsenceIn, MemberIn, MemberPatch, RevisionIn, ScheduleUpdate, field_errors
from .service import PulseService, build_service


def create_app(settings: Optional[Settings] = None, service: Optional[PulseService] = None) -> FastAPI:
    settings = settings or load_settings()
    service = service or build_service(settings)

    async def verify_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> None:
        if x_api_key != settings.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")

    async def actor(x_actor_id: str = Header(..., alias="X-Actor-Id")) -> str:
        return x_actor_id

    def parse_day(value: Optional[str] = Query(None, alias="date")) -> Optional[date]:
        if not value:
            return None
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from exc

    app = FastAPI(title="Daily Pulse API", version="1.0.0")

    @app.exception_handler(ValidationError)
    async def validation_error_handler(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"errors": exc.errors})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"errors": field_errors(exc.errors())}
        )

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(_: Request, exc: AuthorizationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": exc.reason})

    @app.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - io bound
        await service.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        service.shutdown()
        client = getattr(service.messenger, "client", None)
        if client is not None:
            await client.close()

    def get_service() -> PulseService:
        return service

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/slack/interactions")
    async def slack_interactions(
        request: Request,
        background_tasks: BackgroundTasks,
        svc: PulseService = Depends(get_service),
    ) -> Response:
        body = await request.body()
        if not events.verify_signature(
            settings.slack_signing_secret,
            request.headers.get("X-Slack-Request-Timestamp"),
            body,
            request.headers.get("X-Slack-Signature"),
        ):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid signature")
        try:
            payload = events.parse_payload(body)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="malformed interaction payload") from exc

        if payload.get("type") == "view_submission":
            result = await svc.handle_interaction(payload)
            if result:
                return JSONResponse(result)
            return Response(status_code=status.HTTP_200_OK)

        background_tasks.add_task(svc.handle_interaction, payload)
        return Response(status_code=status.HTTP_200_OK)

    # region Reporting
    @app.get("/api/status", dependencies=[Depends(verify_api_key)])
    async def get_status(
        user: str = Depends(actor),
        day: Optional[date] = Depends(parse_day),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.status(user, day).to_dict()

    @app.get("/api/report/weekly", dependencies=[Depends(verify_api_key)])
    async def get_weekly_report(
        day: Optional[date] = Depends(parse_day),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        report = svc.weekly_report(day)
        return {"start": report.start.isoformat(), "end": report.end.isoformat(), "text": report.render()}

    @app.get("/api/members/{user_id}/stats", dependencies=[Depends(verify_api_key)])
    async def get_member_stats(
        user_id: str,
        day: Optional[date] = Depends(parse_day),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        stats = svc.member_stats(user_id, day)
        if stats is None:
            raise HTTPException(status_code=404, detail="member not found")
        return stats

    @app.put("/api/responses/{user_id}/{day}", dependencies=[Depends(verify_api_key)])
    async def revise_answer(
        user_id: str,
        day: str,
        payload: RevisionIn,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        update = await svc.revise_answer(user, user_id, parse_day(day), payload.value)
        return {"text": update.render(), "week_average": update.week_average, "month_average": update.month_average}

    # endregion

    # region Team and schedule
    @app.get("/api/team", dependencies=[Depends(verify_api_key)])
    async def list_team(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> dict[str, object]:
        return {"team": [member.to_dict() for member in svc.list_team(user)]}

    @app.post("/api/team", status_code=201, dependencies=[Depends(verify_api_key)])
    async def add_member(
        payload: MemberIn,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.add_member(user, payload).to_dict()

    @app.put("/api/team/{user_id}", dependencies=[Depends(verify_api_key)])
    async def edit_member(
        user_id: str,
        payload: MemberPatch,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.edit_member(user, user_id, payload).to_dict()

    @app.delete("/api/team/{user_id}", dependencies=[Depends(verify_api_key)])
    async def remove_member(
        user_id: str,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        return svc.remove_member(user, user_id).to_dict()

    @app.put("/api/schedule", dependencies=[Depends(verify_api_key)])
    async def update_schedule(
        payload: ScheduleUpdate,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        config = svc.update_schedule(user, payload)
        return {"version": config.version, "config": config.to_dict()}

    @app.get("/api/config", dependencies=[Depends(verify_api_key)])
    async def get_config(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> dict[str, object]:
        summary = svc.config_summary(user)
        return {**summary.to_dict(), "text": summary.render()}

    @app.post("/api/pause", status_code=204, dependencies=[Depends(verify_api_key)])
    async def pause(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> Response:
        svc.set_paused(user, True)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/resume", status_code=204, dependencies=[Depends(verify_api_key)])
    async def resume(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> Response:
        svc.set_paused(user, False)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # endregion

    # region Roles and absences
    @app.get("/api/roles", dependencies=[Depends(verify_api_key)])
    async def list_roles(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> dict[str, object]:
        summary = svc.list_roles(user)
        return {**summary.to_dict(), "text": summary.render()}

    @app.post("/api/roles/{role}/{user_id}", status_code=204, dependencies=[Depends(verify_api_key)])
    async def grant_role(
        role: str, user_id: str, user: str = Depends(actor), svc: PulseService = Depends(get_service)
    ) -> Response:
        svc.grant_role(user, user_id, role)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/api/roles/{role}/{user_id}", status_code=204, dependencies=[Depends(verify_api_key)])
    async def revoke_role(
        role: str, user_id: str, user: str = Depends(actor), svc: PulseService = Depends(get_service)
    ) -> Response:
        svc.revoke_role(user, user_id, role)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/absences", status_code=201, dependencies=[Depends(verify_api_key)])
    async def set_absence(
        payload: AbsenceIn,
        user: str = Depends(actor),
        svc: PulseService = Depends(get_service),
    ) -> dict[str, object]:
        return {"id": svc.set_absence(user, payload)}

    @app.get("/api/absences/{user_id}", dependencies=[Depends(verify_api_key)])
    async def list_absences(user_id: str, svc: PulseService = Depends(get_service)) -> dict[str, object]:
        return {
            "user_id": user_id,
            "absences": [
                {
                    "id": entry.id,
                    "start_date": entry.start_date.isoformat(),
                    "end_date": entry.end_date.isoformat(),
                    "reason": entry.reason,
                    "set_by": entry.set_by,
                }
                for entry in svc.list_absences(user_id)
            ],
        }

    @app.delete("/api/absences", dependencies=[Depends(verify_api_key)])
    async def clear_absences(user: str = Depends(actor), svc: PulseService = Depends(get_service)) -> dict[str, int]:
        return {"cleared": svc.clear_absences(user)}

    @app.delete("/api/absences/{entry_id}", status_code=204, dependencies=[Depends(verify_api_key)])
    async def remove_absence(
        entry_id: int, user: str = Depends(actor), svc: PulseService = Depends(get_service)
    ) -> Response:
        if not svc.remove_absence(user, entry_id):
            raise HTTPException(status_code=404, detail="absence not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # endregion

    return app


__all__ = ["create_app"]
