"""Request handlers behind the three HTTP functions.

Each request runs the same pipeline: normalise the request, read current
state, short-circuit if there is nothing to do, issue one mutating call, poll
the resulting operation, and format the outcome.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from flask import Request
from googleapiclient.errors import HttpError

from . import clients
from .addresses import detect_client_ip, friend_name, normalize_ip
from .config import PollPolicy, Settings, allowed_origin, load_settings
from .errors import ConfigurationError, InvalidClientAddress, classify
from .firewall import (
    MUTATION_LOCK,
    AllowList,
    fetch_rule,
    insert_rule,
    new_rule,
    patch_source_ranges,
)
from .instances import (
    InstanceRef,
    Shortcut,
    external_ip,
    fetch_instance,
    instance_status,
    internal_ip,
    precheck_start,
    precheck_stop,
    start_instance,
    stop_instance,
)
from .logs import log
from .operations import global_operation_queries, operation_id, zone_operation_queries
from .poller import OperationPoller, Outcome, PollResult
from .responses import (
    error_response,
    json_response,
    preflight,
    provider_error_response,
)

INSTANCE_METHODS = ("GET", "POST")


@dataclass(frozen=True)
class InstanceAction:
    name: str
    past: str
    in_progress: str
    precheck: Callable[[dict, str], Optional[Shortcut]]
    mutate: Callable[..., dict]
    policy: Callable[[Settings], PollPolicy]
    report_addresses: bool = False


START = InstanceAction(
    name="start",
    past="started",
    in_progress="STARTING",
    precheck=precheck_start,
    mutate=start_instance,
    policy=lambda s: s.start_policy,
    report_addresses=True,
)

STOP = InstanceAction(
    name="stop",
    past="stopped",
    in_progress="STOPPING",
    precheck=precheck_stop,
    mutate=stop_instance,
    policy=lambda s: s.stop_policy,
)


def _received(request: Request, action: str):
    log("request.received", action=action, method=request.method,
        origin=request.headers.get("Origin"))


def _config_error(action: str, e: ConfigurationError):
    log("config.error", severity="ERROR", action=action, message=str(e))
    return error_response(f"Failed to {action}: server is misconfigured", 500, str(e),
                          code="CONFIGURATION_ERROR")


def _compute_error(message: str, e: HttpError, origin: str, **fields):
    err = classify(e)
    log("compute.error", severity="ERROR", http_code=err.status, code=err.code,
        message=err.message, **fields)
    return provider_error_response(message, err, origin)


def _unclassified_error(message: str, e: Exception, origin: str, **fields):
    log("compute.error", severity="ERROR", http_code=500, code=type(e).__name__,
        message=str(e), **fields)
    return error_response(message, 500, str(e) or type(e).__name__,
                          code=type(e).__name__, origin=origin)


def _operation_failed(message: str, result: PollResult, origin: str, **extra):
    detail = result.error
    log("operation.error", severity="ERROR", operation=operation_id(result.operation),
        code=detail["code"], message=detail["message"])
    return error_response(message, 500, detail["message"], code=detail["code"],
                          origin=origin, operationId=operation_id(result.operation),
                          details=detail["details"], **extra)


def handle_start(request: Request):
    return _run_instance_action(request, START)


def handle_stop(request: Request):
    return _run_instance_action(request, STOP)


def _run_instance_action(request: Request, action: InstanceAction):
    _received(request, action.name)

    # CORS preflight
    if request.method == "OPTIONS":
        return preflight()

    if request.method not in INSTANCE_METHODS:
        return error_response("Method not allowed. Use GET or POST.", 405,
                              f"method {request.method} not allowed")

    try:
        settings = load_settings()
    except ConfigurationError as e:
        return _config_error(f"{action.name} server", e)

    origin = settings.allowed_origin
    ref = InstanceRef.from_settings(settings)
    label = settings.display_name

    try:
        compute = clients.get_compute()
        instance = fetch_instance(compute, ref)
        log("instance.status", instance=ref.name, zone=ref.zone,
            status=instance.get("status"))

        shortcut = action.precheck(instance, label)
        if shortcut:
            return json_response(shortcut.payload, shortcut.status_code, origin)

        operation = action.mutate(compute, ref)
        op_id = operation_id(operation)
        log(f"instance.{action.name}.called", instance=ref.name, operation=op_id)

        wait, get = zone_operation_queries(compute, ref.project, ref.zone)
        result = OperationPoller(wait, get, action.policy(settings)).poll(operation)

        if result.outcome is Outcome.TIMED_OUT:
            return json_response({
                "success": True,
                "message": f"{label} {action.name} operation initiated (may take a few minutes)",
                "operationId": op_id,
                "status": action.in_progress,
            }, 202, origin)

        if result.outcome is Outcome.COMPLETED_WITH_ERROR:
            return _operation_failed(f"Failed to {action.name} {label}", result, origin)

        updated = fetch_instance(compute, ref)
        payload = {
            "success": True,
            "message": f"{label} {action.past} successfully",
            "status": instance_status(updated).value,
            "operationId": op_id,
        }
        if action.report_addresses:
            payload["externalIp"] = external_ip(updated) or "N/A"
            payload["internalIp"] = internal_ip(updated) or "N/A"
        log(f"instance.{action.name}.done", instance=ref.name, operation=op_id,
            status=payload["status"], ticks=result.ticks)
        return json_response(payload, 200, origin)

    except HttpError as e:
        return _compute_error(f"Failed to {action.name} {label}", e, origin,
                              action=action.name, instance=ref.name)
    except Exception as e:
        return _unclassified_error(f"Failed to {action.name} {label}", e, origin,
                                   action=action.name, instance=ref.name)


def handle_add_friend(request: Request):
    _received(request, "add-friend")

    if request.method == "OPTIONS":
        return preflight()

    # Only accept POST requests for adding friends
    if request.method != "POST":
        return json_response({
            "success": False,
            "message": "Method not allowed. Use POST to add a friend.",
        }, 405, allowed_origin())

    try:
        settings = load_settings()
    except ConfigurationError as e:
        return _config_error("add friend", e)

    origin = settings.allowed_origin
    detected = detect_client_ip(request)
    try:
        ip = normalize_ip(detected)
    except InvalidClientAddress as e:
        log("request.rejected", severity="WARNING", reason=str(e), detected_ip=detected)
        return json_response({
            "success": False,
            "message": str(e),
            "detectedIp": e.detected,
        }, 400, origin)

    name = friend_name(request)
    log("firewall.add.requested", friend=name, ip=ip, rule=settings.firewall_rule)

    try:
        compute = clients.get_compute()
        with MUTATION_LOCK:
            return _add_to_firewall(compute, settings, ip, name)
    except HttpError as e:
        return _compute_error(f"Failed to add friend to {settings.display_name} whitelist",
                              e, origin, rule=settings.firewall_rule, ip=ip)
    except Exception as e:
        return _unclassified_error(
            f"Failed to add friend to {settings.display_name} whitelist",
            e, origin, rule=settings.firewall_rule, ip=ip)


def _add_to_firewall(compute, settings: Settings, ip: str, name: str):
    origin = settings.allowed_origin
    label = settings.display_name
    common = {"ip": ip, "friendName": name}

    rule = fetch_rule(compute, settings.project, settings.firewall_rule)
    if rule is None:
        return _create_rule(compute, settings, ip, name)

    allow_list = AllowList(rule.get("sourceRanges"))
    if allow_list.contains(ip):
        log("firewall.already_allowed", ip=ip, rule=settings.firewall_rule)
        return json_response({
            "success": True,
            "message": f"IP {ip} is already allowed to access the {label}",
            **common,
            "alreadyExists": True,
            "totalAllowedIPs": len(allow_list),
        }, 200, origin)

    updated = allow_list.with_added(ip)
    operation = patch_source_ranges(compute, settings.project, settings.firewall_rule, updated)
    op_id = operation_id(operation)
    log("firewall.patch.called", rule=settings.firewall_rule, operation=op_id)

    result = _poll_global(compute, settings, operation)

    if result.outcome is Outcome.TIMED_OUT:
        return json_response({
            "success": True,
            "message": f"Adding {name} to {label} whitelist (operation in progress)",
            **common,
            "operationId": op_id,
        }, 202, origin)

    if result.outcome is Outcome.COMPLETED_WITH_ERROR:
        return _operation_failed(f"Failed to add friend to {label} whitelist",
                                 result, origin, **common)

    log("firewall.patch.done", friend=name, ip=ip, total=len(updated))
    return json_response({
        "success": True,
        "message": f"Successfully added {name} to {label} whitelist",
        **common,
        "operationId": op_id,
        "alreadyExists": False,
        "totalAllowedIPs": len(updated),
    }, 200, origin)


def _create_rule(compute, settings: Settings, ip: str, name: str):
    origin = settings.allowed_origin
    label = settings.display_name
    common = {"ip": ip, "friendName": name, "newRule": True}

    log("firewall.rule.missing", rule=settings.firewall_rule)
    operation = insert_rule(compute, settings.project, new_rule(settings, ip))
    op_id = operation_id(operation)
    log("firewall.insert.called", rule=settings.firewall_rule, operation=op_id)

    result = _poll_global(compute, settings, operation)

    if result.outcome is Outcome.TIMED_OUT:
        return json_response({
            "success": True,
            "message": f"Creating firewall rule for {name} (operation in progress)",
            **common,
            "operationId": op_id,
        }, 202, origin)

    if result.outcome is Outcome.COMPLETED_WITH_ERROR:
        return _operation_failed(f"Failed to create {label} firewall rule",
                                 result, origin, **common)

    return json_response({
        "success": True,
        "message": f"Created new firewall rule and added {name} to {label} whitelist",
        **common,
        "operationId": op_id,
        "totalAllowedIPs": 1,
    }, 201, origin)


def _poll_global(compute, settings: Settings, operation: dict) -> PollResult:
    wait, get = global_operation_queries(compute, settings.project)
    return OperationPoller(wait, get, settings.firewall_policy).poll(operation)
