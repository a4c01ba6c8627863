import os, json, time, logging, urllib.request

log = logging.getLogger("resizer.config")

FORMAT_MODES = ("adaptive", "fixed-png")

DEFAULT_STORAGE_CLASS = "REDUCED_REDUNDANCY"
DEFAULT_CACHE_CONTROL = "max-age=31536000, public"


def setup_logging():
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s :: %(message)s")
    # Lambda installs its own root handler, so basicConfig alone is a no-op there
    logging.getLogger("resizer").setLevel(getattr(logging, level, logging.INFO))


# -------- AppConfig (Lambda extension/Agent endpoint) --------
def _load_appconfig_extension():
    app = os.getenv("APPCONFIG_APPLICATION")
    env = os.getenv("APPCONFIG_ENVIRONMENT")
    profile = os.getenv("APPCONFIG_PROFILE")
    if not (app and env and profile):
        log.debug("APPCONFIG_* not set; using ENV only.")
        return {}

    base = os.getenv("APPCONFIG_BASE_URL", "http://localhost:2772")
    url = f"{base}/applications/{app}/environments/{env}/configurations/{profile}"
    attempts = max(1, int(os.getenv("APPCONFIG_RETRIES", "0")) or 1)
    pause = float(os.getenv("APPCONFIG_RETRY_SLEEP", "1"))

    for i in range(1, attempts + 1):
        try:
            log.info("Loading config from AppConfig: %s (try %d/%d)", url, i, attempts)
            with urllib.request.urlopen(url, timeout=2.5) as r:
                cfg = json.loads(r.read().decode("utf-8"))
                log.info("AppConfig loaded with keys: %s", sorted(cfg.keys()))
                return cfg
        except Exception as e:
            if i == attempts:
                log.warning("AppConfig not reachable after %d attempts: %s; falling back to ENV", attempts, e)
                break
            time.sleep(pause)

    return {}


def _normalize(cfg):
    def val(*keys, default=None):
        for k in keys:
            if k in cfg and cfg[k] not in (None, ""):
                return cfg[k]
        return default

    norm = {
        "BUCKET": val("BUCKET", "bucket"),
        "URL": val("URL", "url"),
        "FORMAT_MODE": str(val("FORMAT_MODE", "format_mode", default="adaptive")).lower(),
        "REGION": val("REGION", "region", default=os.getenv("AWS_REGION", "us-east-1")),
        "STORAGE_CLASS": val("STORAGE_CLASS", "storage_class", default=DEFAULT_STORAGE_CLASS),
        "CACHE_CONTROL": val("CACHE_CONTROL", "cache_control", default=DEFAULT_CACHE_CONTROL),
    }

    missing = [k for k in ("BUCKET", "URL") if not norm.get(k)]
    if missing:
        raise RuntimeError(f"Missing required config: {missing}. Provide via AppConfig or ENV.")
    if norm["FORMAT_MODE"] not in FORMAT_MODES:
        raise RuntimeError(f"Unknown FORMAT_MODE {norm['FORMAT_MODE']!r}; expected one of {FORMAT_MODES}")
    return norm


def load_config():
    cfg = _load_appconfig_extension()

    # ENV overrides on top of AppConfig
    for k in ("BUCKET", "URL", "FORMAT_MODE", "REGION", "STORAGE_CLASS", "CACHE_CONTROL"):
        v = os.getenv(k)
        if v not in (None, ""):
            cfg[k] = v

    norm = _normalize(cfg)
    log.info("Effective config: %s", norm)
    return norm
