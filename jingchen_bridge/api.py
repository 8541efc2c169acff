import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from jingchen_bridge.bridge import PrinterBridge
from jingchen_bridge.commands import PrinterKind
from jingchen_bridge.env import BRIDGE_ID, JOB_HISTORY_MAX
from jingchen_bridge.errors import BridgeError
from jingchen_bridge.models import PreviewRequest, PrintRequest, PrinterIn, WifiConfigIn
from jingchen_bridge.security import verify_api_key, verify_client_ip

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "transport": 503,
    "no_printer": 503,
    "protocol": 500,
    "timeout": 504,
    "sequence": 500,
    "busy": 429,
    "not_found": 404,
    "invalid": 422,
}

ERROR_TITLE = {
    "busy": "Printer busy",
    "not_found": "Not found",
    "no_printer": "No printer",
    "transport": "Print service unavailable",
    "invalid": "Invalid label content",
}


def create_app(bridge: Optional[PrinterBridge] = None) -> FastAPI:
    bridge = bridge or PrinterBridge(history_max=JOB_HISTORY_MAX)
    app = FastAPI(title="Jingchen Bridge")
    app.state.bridge = bridge

    @app.on_event("startup")
    async def _startup():
        bridge.start()
        logger.info("Bridge %s starting, SDK at %s", BRIDGE_ID, bridge.settings.ws_url)

    @app.on_event("shutdown")
    async def _shutdown():
        await bridge.stop()
        logger.info("Bridge shutting down")

    @app.exception_handler(BridgeError)
    async def _bridge_error(request: Request, exc: BridgeError):
        body = {"error": ERROR_TITLE.get(exc.kind, "Print failed"), **exc.to_dict()}
        job_id = request.path_params.get("job_id") or getattr(request.state, "job_id", None)
        if job_id:
            body["jobId"] = job_id
        return JSONResponse(status_code=ERROR_STATUS.get(exc.kind, 500), content=body)

    @app.get("/health")
    def health():
        # público: sin datos sensibles
        return {
            "status": "ok",
            "wsConnected": bridge.transport.is_connected(),
            "bridgeId": BRIDGE_ID,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    secured = [Depends(verify_api_key), Depends(verify_client_ip)]

    printer = APIRouter(prefix="/printer", tags=["printer"], dependencies=secured)

    @printer.get("/status")
    def printer_status():
        return {"wsConnected": bridge.transport.is_connected(), **bridge.status()}

    @printer.get("/scan")
    async def printer_scan(kind: PrinterKind = PrinterKind.USB):
        printers = await bridge.scan_printers(kind)
        return {
            "printers": [{"printerName": name, "port": port} for name, port in printers.items()],
        }

    @printer.post("/connect")
    async def printer_connect(payload: PrinterIn):
        handle = payload.to_handle()
        await bridge.connect_printer(handle)
        return {"success": True, "printer": handle.to_dict()}

    @printer.post("/disconnect")
    async def printer_disconnect():
        await bridge.disconnect_printer()
        return {"success": True}

    @printer.post("/preview")
    async def printer_preview(payload: PreviewRequest):
        image = await bridge.preview(payload)
        return {"success": True, "imageData": image}

    @printer.get("/wifi-config")
    async def printer_wifi_config():
        return {"wifi": await bridge.get_wifi_config()}

    @printer.post("/wifi-config")
    async def printer_configure_wifi(payload: WifiConfigIn):
        await bridge.configure_wifi(payload.wifi_name, payload.wifi_password)
        return {"success": True, "wifiName": payload.wifi_name}

    jobs = APIRouter(prefix="/print-label", tags=["print"], dependencies=secured)

    @jobs.post("")
    async def print_label(payload: PrintRequest, request: Request):
        spec = payload.to_spec(bridge.settings)
        request.state.job_id = spec.job_id
        record = await bridge.run_job(spec)
        return {
            "success": record.status == "done",
            "jobId": record.job_id,
            "status": record.status,
            "printer": record.printer,
            "copies": record.copies,
            "printedCount": record.labels_printed,
            "copiesPrinted": record.copies_printed,
        }

    @jobs.get("/{job_id}")
    def job_status(job_id: str):
        return bridge.get_job(job_id).model_dump(by_alias=True)

    @jobs.post("/{job_id}/cancel")
    def job_cancel(job_id: str):
        record = bridge.request_stop(job_id)
        return {"jobId": job_id, "status": record.status, "stopRequested": record.stop_requested}

    app.include_router(printer)
    app.include_router(jobs)
    return app


app = create_app()
