import asyncio
import json

import pytest
import websockets

from conftest import FAST, ack, run
from jingchen_bridge.bridge import PrinterBridge
from jingchen_bridge.errors import (
    CallTimeoutError,
    ConnectionDroppedError,
    InvalidContentError,
    JobInProgressError,
    MalformedReplyError,
    NoPrinterError,
    NotConnectedError,
    UnknownJobError,
    VendorError,
)
from jingchen_bridge.models import PreviewRequest, PrintRequest
from jingchen_bridge.transport import ConnectionState, Transport


def request(content=None, labels=None, copies=None, **extra):
    payload = {"label": {"width": 50, "height": 30}}
    if labels is not None:
        payload["labels"] = labels
    else:
        payload["content"] = content or [{"type": "text", "value": "hello"}]
    if copies is not None:
        payload["copies"] = copies
    payload.update(extra)
    return PrintRequest.model_validate(payload)


def spec_for(bridge, **kwargs):
    return request(**kwargs).to_spec(bridge.settings)


def test_single_copy_job_prints_placeholder_first(bridge, device):
    spec = spec_for(bridge)
    record = run(bridge.run_job(spec))

    assert record.status == "done"
    assert record.printer == "B21-C2B2"
    assert record.placeholder is True
    assert record.device_count == 2
    assert record.labels_printed == 1
    assert device.params("startJob")[0]["count"] == 2

    names = device.api_names()
    assert names[:4] == ["initSdk", "getAllPrinters", "selectPrinter", "startJob"]
    assert names.count("commitJob") == 2
    assert names[-1] == "endJob"

    texts = [p["value"] for p in device.params("DrawLableText")]
    assert texts == ["--- 系統標籤 ---", "hello"]
    assert bridge.gate.active_job is None


def test_multiple_copies_skip_placeholder(bridge, device):
    record = run(bridge.run_job(spec_for(bridge, copies=3)))

    assert record.placeholder is False
    assert device.params("startJob")[0]["count"] == 3
    assert device.params("commitJob") == [{"printData": None, "printerImageProcessingInfo": {"printQuantity": 3}}]
    assert record.copies_printed == 3


def test_multi_label_job(bridge, device):
    labels = [
        {"content": [{"type": "text", "value": "A"}]},
        {"content": [{"type": "border"}, {"type": "text", "value": "B"}], "copies": 2},
    ]
    record = run(bridge.run_job(spec_for(bridge, labels=labels)))

    assert record.copies == 3
    assert record.labels_printed == 2
    assert record.copies_printed == 3
    assert device.params("startJob")[0]["count"] == 3
    assert device.api_names().count("InitDrawingBoard") == 2
    assert device.api_names().count("DrawLableLine") == 4


def test_explicit_printer_skips_scan(bridge, device):
    spec = spec_for(bridge, copies=2, printer={"name": "B3S", "port": 4})
    run(bridge.run_job(spec))

    assert "getAllPrinters" not in device.api_names()
    assert device.params("selectPrinter") == [{"printerName": "B3S", "port": 4}]
    assert bridge.status()["currentPrinter"]["name"] == "B3S"


def test_draw_timeout_still_ends_job_and_releases_gate(bridge, device):
    device.reply("DrawLableText", None)
    spec = spec_for(bridge, copies=2)

    with pytest.raises(CallTimeoutError):
        run(bridge.run_job(spec))

    assert device.api_names()[-1] == "endJob"
    assert bridge.gate.active_job is None
    record = bridge.get_job(spec.job_id)
    assert record.status == "failed"
    assert record.error_kind == "timeout"


def test_end_job_failure_does_not_mask_draw_error(bridge, device):
    device.reply("DrawLableBarCode", 7)
    device.reply("endJob", 99)
    spec = spec_for(bridge, copies=2, content=[{"type": "barcode", "value": "1"}])

    with pytest.raises(VendorError) as exc:
        run(bridge.run_job(spec))

    assert exc.value.code == 7
    assert bridge.get_job(spec.job_id).error_code == 7
    assert bridge.gate.active_job is None


def test_busy_start_is_retried(bridge, device):
    device.reply("startJob", -2, -2, 0)
    record = run(bridge.run_job(spec_for(bridge, copies=2)))

    assert record.status == "done"
    assert device.api_names().count("startJob") == 3


def test_second_job_is_rejected_without_io(bridge, device):
    device.reply("commitJob", (0.05, 0))

    async def scenario():
        first = asyncio.ensure_future(bridge.run_job(spec_for(bridge, copies=2)))
        await asyncio.sleep(0)
        assert bridge.gate.active_job is not None
        sent = len(device.sent)
        with pytest.raises(JobInProgressError):
            await bridge.run_job(spec_for(bridge, copies=2))
        assert len(device.sent) == sent
        return await first

    record = run(scenario())
    assert record.status == "done"
    assert device.api_names().count("startJob") == 1


def test_scan_is_refused_during_a_job(bridge, device):
    bridge.gate.acquire("other")
    with pytest.raises(JobInProgressError):
        run(bridge.scan_printers())
    assert device.sent == []


def test_cancel_is_honored_at_label_boundary(bridge, device):
    labels = [{"content": [{"type": "text", "value": str(i)}]} for i in range(3)]
    spec = spec_for(bridge, labels=labels)

    def stop_after_commit(message):
        if message["apiName"] == "commitJob":
            bridge.request_stop(spec.job_id)

    device.on_send = stop_after_commit
    record = run(bridge.run_job(spec))

    assert record.status == "cancelled"
    assert record.labels_printed == 1
    assert device.api_names().count("commitJob") == 1
    assert device.api_names()[-1] == "endJob"


def test_cancel_finished_job_is_noop(bridge):
    spec = spec_for(bridge, copies=2)
    run(bridge.run_job(spec))
    record = bridge.request_stop(spec.job_id)
    assert record.status == "done"
    assert record.stop_requested is False


def test_unknown_job(bridge):
    with pytest.raises(UnknownJobError):
        bridge.get_job("nope")


def test_last_printer_is_reused_when_scan_is_empty(bridge, device):
    run(bridge.run_job(spec_for(bridge, copies=2)))
    device.reply("getAllPrinters", 23)
    record = run(bridge.run_job(spec_for(bridge, copies=2)))

    assert record.printer == "B21-C2B2"
    assert device.params("selectPrinter") == [{"printerName": "B21-C2B2", "port": 1}] * 2


def test_no_printer(bridge, device):
    device.reply("getAllPrinters", 23)
    spec = spec_for(bridge)

    with pytest.raises(NoPrinterError):
        run(bridge.run_job(spec))

    assert "startJob" not in device.api_names()
    assert "endJob" not in device.api_names()
    assert bridge.get_job(spec.job_id).error_kind == "no_printer"


def test_not_connected(bridge, device):
    device.connected = False
    with pytest.raises(NotConnectedError):
        run(bridge.run_job(spec_for(bridge)))
    assert device.sent == []
    assert bridge.gate.active_job is None


def test_disconnect_fails_pending_calls(bridge, device):
    device.reply("getAllPrinters", None)

    async def scenario():
        scan = asyncio.ensure_future(bridge.commands.scan_usb_printers())
        await asyncio.sleep(0)
        bridge._on_connection_state(ConnectionState.DISCONNECTED)
        await scan

    with pytest.raises(ConnectionDroppedError):
        run(scenario())


def test_status_tracks_notifications(bridge):
    bridge.correlator.handle_frame({"resultAck": {"callback": {"name": "onCoverStatusChange", "coverStatus": 1}}})
    bridge.correlator.handle_frame({"resultAck": {"callback": {"name": "onElectricityChange", "powerLever": 4}}})

    status = bridge.status()
    assert status["coverStatus"] == 1
    assert status["powerLevel"] == 4
    assert status["connected"] is True
    assert status["activeJob"] is None


def test_printer_offline_clears_current(bridge):
    run(bridge.connect_printer(request(printer={"name": "B21", "port": 1}).printer.to_handle()))
    assert bridge.status()["currentPrinter"]["name"] == "B21"

    bridge.correlator.handle_frame({"apiName": "printStatus", "resultAck": {"online": "offline"}})
    assert bridge.status()["currentPrinter"] is None
    assert bridge.status()["lastPrinter"]["name"] == "B21"


def test_job_history_is_bounded(device):
    bridge = PrinterBridge(settings=FAST, transport=device, history_max=2)
    specs = [spec_for(bridge, copies=2) for _ in range(3)]
    for spec in specs:
        run(bridge.run_job(spec))

    with pytest.raises(UnknownJobError):
        bridge.get_job(specs[0].job_id)
    assert bridge.get_job(specs[2].job_id).status == "done"


def test_unexpected_send_error_fails_job_and_releases_gate(bridge, device):
    device.reply("DrawLableText", RuntimeError("socket gone"))
    device.reply("endJob", RuntimeError("socket gone"))
    spec = spec_for(bridge, copies=2)

    with pytest.raises(RuntimeError):
        run(bridge.run_job(spec))

    assert device.api_names()[-1] == "endJob"
    assert bridge.gate.active_job is None
    record = bridge.get_job(spec.job_id)
    assert record.status == "failed"
    assert record.error_kind == "internal"
    assert record.last_error == "socket gone"


def test_cancelled_job_task_is_recorded_and_releases_gate(bridge, device):
    device.reply("commitJob", (1.0, 0))
    spec = spec_for(bridge, copies=2)

    async def scenario():
        task = asyncio.ensure_future(bridge.run_job(spec))
        while "commitJob" not in device.api_names():
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    run(scenario())
    assert bridge.gate.active_job is None
    record = bridge.get_job(spec.job_id)
    assert record.status == "failed"
    assert record.error_kind == "cancelled"
    assert device.api_names()[-1] == "endJob"


class EchoSocket:
    """Answers every call with errorCode 0. Sends of ``broken`` API names fail as a closed socket."""

    def __init__(self, broken=()):
        self.broken = set(broken)
        self.sent = []
        self.frames = asyncio.Queue()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        while True:
            frame = await self.frames.get()
            if frame is None:
                return
            yield frame

    async def send(self, data):
        api_name = json.loads(data)["apiName"]
        self.sent.append(api_name)
        if api_name in self.broken:
            raise websockets.exceptions.ConnectionClosedError(None, None)
        result = {"errorCode": 0}
        if api_name == "getAllPrinters":
            result["info"] = '{"B21": 1}'
        self.frames.put_nowait(json.dumps({"apiName": api_name, "resultAck": result}))

    async def close(self):
        self.frames.put_nowait(None)


def test_socket_closed_during_draw_fails_job_and_releases_gate():
    sock = EchoSocket(broken=("DrawLableText", "endJob"))
    transport = Transport("ws://sdk", reconnect_interval=0.01, connector=lambda url, **kwargs: sock)
    bridge = PrinterBridge(settings=FAST, transport=transport)
    spec = spec_for(bridge)

    async def scenario():
        bridge.start()
        while not transport.is_connected():
            await asyncio.sleep(0.005)
        try:
            await bridge.run_job(spec)
        finally:
            await bridge.stop()

    with pytest.raises(ConnectionDroppedError):
        run(scenario())

    assert sock.sent[-1] == "endJob"
    assert bridge.gate.active_job is None
    record = bridge.get_job(spec.job_id)
    assert record.status == "failed"
    assert record.error_kind == "transport"


def test_invalid_barcode_is_rejected_before_any_io(bridge, device):
    spec = spec_for(bridge, content=[{"type": "barcode", "value": "12345", "barcodeType": "EAN13"}])

    with pytest.raises(InvalidContentError):
        run(bridge.run_job(spec))

    assert device.sent == []
    assert bridge.gate.active_job is None


def preview_request(**extra):
    payload = {"label": {"width": 50, "height": 30}, "content": [{"type": "text", "value": "hello"}]}
    payload.update(extra)
    return PreviewRequest.model_validate(payload)


def test_preview_draws_board_without_printing(bridge, device):
    device.reply("GenerateLablePreView", {"resultAck": {"errorCode": 0}, "data": "iVBORw0KGgo="})

    image = run(bridge.preview(preview_request(showBorder=True)))

    assert image == "iVBORw0KGgo="
    assert device.api_names() == ["initSdk", "InitDrawingBoard", "DrawLableText", "GenerateLablePreView"]
    assert device.params("GenerateLablePreView") == [{"isShowBorder": True}]
    assert bridge.gate.active_job is None


def test_preview_at_display_scale(bridge, device):
    device.reply("generateImagePreviewImage", ack(info='{"ImageData": "AAAA"}'))

    image = run(bridge.preview(preview_request(displayScale=8)))

    assert image == "AAAA"
    assert device.params("generateImagePreviewImage") == [{"displayScale": 8}]


def test_preview_without_image_releases_gate(bridge, device):
    device.reply("GenerateLablePreView", ack())

    with pytest.raises(MalformedReplyError):
        run(bridge.preview(preview_request()))
    assert bridge.gate.active_job is None
    assert "endJob" not in device.api_names()


def test_preview_is_refused_during_a_job(bridge, device):
    bridge.gate.acquire("job-1")
    with pytest.raises(JobInProgressError):
        run(bridge.preview(preview_request()))
    assert device.sent == []


def test_wifi_configuration(bridge, device):
    device.reply("getWifiConfiguration", ack(info='{"wifiName": "shop"}'))

    run(bridge.configure_wifi("shop", "secret"))
    assert device.params("configurationWifi") == [{"wifiName": "shop", "wifiPassword": "secret"}]
    assert run(bridge.get_wifi_config()) == {"wifiName": "shop"}


def test_wifi_configuration_is_refused_during_a_job(bridge, device):
    bridge.gate.acquire("job-1")
    with pytest.raises(JobInProgressError):
        run(bridge.configure_wifi("shop", "secret"))
    assert device.sent == []
