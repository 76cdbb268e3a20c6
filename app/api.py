"""API Blueprint - order board, orders, stats and departments."""

import logging
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from models.results import WriteResult
from models.view import Board, FilterState, SearchState, SortState, StatusFilter, ViewState
from services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


def _runner():
    return current_app.extensions["order_board"]


def _run(coro):
    return _runner().run(coro)


def _session():
    return _runner().session


def error_response(code: str, message: str, status: int, details: Any = None):
    return jsonify({"error": {"code": code, "message": message, "details": details}}), status


@api_bp.errorhandler(ValidationError)
def _validation_error(exc: ValidationError):
    return error_response("validation_error", str(exc), 400, {"field": exc.field})


@api_bp.errorhandler(PydanticValidationError)
def _schema_error(exc: PydanticValidationError):
    return error_response(
        "validation_error",
        "Invalid request",
        400,
        exc.errors(include_url=False, include_context=False, include_input=False),
    )


@api_bp.errorhandler(NotFoundError)
def _not_found(exc: NotFoundError):
    return error_response("not_found", str(exc), 404, {"kind": exc.kind, "key": exc.key})


@api_bp.errorhandler(Exception)
def _internal_error(exc: Exception):
    logger.error("[API] Unhandled error: %s", exc, exc_info=True)
    return error_response("internal_error", "Internal error", 500, str(exc))


# ============================================================================
# Payload helpers
# ============================================================================


def _flag(name: str, default: bool) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _view_from_args() -> ViewState:
    """Build the board view from query parameters."""
    args = request.args
    filters: dict[str, Any] = {
        "customer_name": args.get("customer_name", ""),
        "assigned_to": args.get("assigned_to", ""),
        "created_within": args.get("created_within", "all"),
        "status": StatusFilter(
            unassigned=_flag("unassigned", True),
            in_progress=_flag("in_progress", True),
            completed=_flag("completed", True),
        ),
    }
    if args.get("closed_after"):
        filters["closed_after"] = args["closed_after"]
    priorities = args.getlist("priority")
    if priorities:
        filters["priority"] = priorities

    return ViewState(
        search=SearchState(term=args.get("search", ""), field=args.get("search_field", "customer")),
        sort=SortState(sort_by=args.get("sort_by", "ticket"), direction=args.get("direction", "asc")),
        filters=FilterState.model_validate(filters),
        show_completed=_flag("show_completed", False),
    )


def _board_payload(board: Board) -> dict:
    return {
        "columns": [
            {
                "key": column.key,
                "title": column.title,
                "count": column.count,
                "orders": [order.to_row() for order in column.orders],
            }
            for column in board.columns
        ],
        "completed_count": board.completed_count,
        "visible_orders": board.visible_orders,
    }


def _result_response(result: WriteResult, *, created: bool = False):
    payload = result.model_dump(mode="json", exclude={"order"})
    payload["order"] = result.order.to_row() if result.order else None

    if result.success:
        status = 201 if created and result.persisted else 200
    elif result.persisted:
        # Saved locally only; the client may retry
        status = 202
    elif result.skipped:
        return error_response("not_found", result.error or "Not found", 404, payload)
    else:
        return error_response("store_unavailable", result.error or "Write failed", 503, payload)
    return jsonify(payload), status


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


# ============================================================================
# Routes
# ============================================================================


@api_bp.route("/board", methods=["GET"])
def get_board():
    """
    Projected order board.

    Query params: search, search_field, sort_by, direction, show_completed,
    unassigned/in_progress/completed toggles, priority (repeatable),
    customer_name, assigned_to, created_within, closed_after, agent, department.
    """
    view = _view_from_args()
    agent = request.args.get("agent")
    department = request.args.get("department")
    session = _session()
    if agent or department:
        board = session.scoped_board(view, agent=agent, department=department)
    else:
        board = session.board(view)
    return jsonify(_board_payload(board)), 200


@api_bp.route("/orders", methods=["GET"])
def list_orders():
    session = _session()
    return jsonify({"orders": [order.to_row() for order in session.orders]}), 200


@api_bp.route("/orders", methods=["POST"])
def create_order():
    body = _json_body()
    tasks = body.get("tasks")
    if tasks is not None and not isinstance(tasks, list):
        raise ValidationError("tasks must be a list of labels", field="tasks")

    result = _run(
        _session().create_order(
            body.get("title", ""),
            body.get("type", ""),
            body.get("customer_name", ""),
            body.get("ticket_number", ""),
            priority=body.get("priority", "medium"),
            tasks=tasks,
            assigned_to=body.get("assigned_to"),
            invoice_number=body.get("invoice_number"),
            note=body.get("note"),
        )
    )
    return _result_response(result, created=True)


@api_bp.route("/orders/<order_id>", methods=["DELETE"])
def delete_order(order_id: str):
    return _result_response(_run(_session().delete_order(order_id)))


@api_bp.route("/orders/<order_id>/assign", methods=["POST"])
def assign_order(order_id: str):
    body = _json_body()
    return _result_response(_run(_session().assign(order_id, body.get("agent", ""))))


@api_bp.route("/orders/<order_id>/tasks/<task_id>/toggle", methods=["POST"])
def toggle_task(order_id: str, task_id: str):
    return _result_response(_run(_session().toggle_task(order_id, task_id)))


@api_bp.route("/orders/<order_id>/details", methods=["PATCH"])
def update_details(order_id: str):
    return _result_response(_run(_session().update_details(order_id, _json_body())))


@api_bp.route("/stats", methods=["GET"])
def get_stats():
    session = _session()
    return jsonify({**session.stats.model_dump(), "degraded": session.degraded}), 200


@api_bp.route("/departments", methods=["GET"])
def list_departments():
    departments = _session().departments
    return jsonify({"departments": [department.model_dump() for department in departments]}), 200
