from pydantic import BaseModel, ConfigDict, Field

from jingchen_bridge import env


class Delays(BaseModel):
    """Fixed settle delays (seconds).

    The vendor SDK emits no completion events, so each delay stands in for
    one missing signal and can be dropped independently once the vendor
    provides it.
    """
    model_config = ConfigDict(frozen=True)

    # initSdk returns before the SDK is ready to accept printer calls
    after_init: float = 2.0
    # commitJob returns before the device has consumed the page
    after_commit: float = 1.0
    # draw calls are rendered asynchronously inside the SDK
    between_draws: float = 0.1
    # last draw of a label must land before commitJob
    after_draw_complete: float = 0.3
    # base interval of the startJob busy retry (attempt n waits n * interval)
    retry_interval: float = 1.0


class Timeouts(BaseModel):
    model_config = ConfigDict(frozen=True)

    default: float = 10.0
    long_scan: float = 25.0
    print_submit: float = 30.0


class BridgeSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    ws_url: str = "ws://127.0.0.1:37989"
    reconnect_interval: float = 3.0

    default_density: int = 3
    default_label_type: int = 1
    default_print_mode: int = 1

    start_job_attempts: int = Field(3, ge=1)
    placeholder_threshold: int = Field(1, ge=0)

    delays: Delays = Delays()
    timeouts: Timeouts = Timeouts()

    @classmethod
    def from_env(cls) -> "BridgeSettings":
        return cls(
            ws_url=env.JINGCHEN_WS_URL,
            reconnect_interval=env.RECONNECT_INTERVAL_SECONDS,
            default_density=env.DEFAULT_DENSITY,
            default_label_type=env.DEFAULT_LABEL_TYPE,
            default_print_mode=env.DEFAULT_PRINT_MODE,
            start_job_attempts=env.START_JOB_ATTEMPTS,
            placeholder_threshold=env.PLACEHOLDER_THRESHOLD,
            delays=Delays(
                after_init=env.DELAY_AFTER_INIT_SECONDS,
                after_commit=env.DELAY_AFTER_COMMIT_SECONDS,
                between_draws=env.DELAY_BETWEEN_DRAWS_SECONDS,
                after_draw_complete=env.DELAY_AFTER_DRAW_COMPLETE_SECONDS,
                retry_interval=env.RETRY_INTERVAL_SECONDS,
            ),
            timeouts=Timeouts(
                default=env.TIMEOUT_DEFAULT_SECONDS,
                long_scan=env.TIMEOUT_LONG_SCAN_SECONDS,
                print_submit=env.TIMEOUT_PRINT_SUBMIT_SECONDS,
            ),
        )
