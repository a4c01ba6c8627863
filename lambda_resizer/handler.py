import json, logging, sys

import boto3
from botocore.config import Config

from lambda_resizer.config import load_config, setup_logging
from lambda_resizer.pipeline import ObjectNotFound, ResizeError, ResizePipeline, parse_key

setup_logging()
log = logging.getLogger("resizer")

# Built on first invocation and reused for the life of the process
_PIPELINE = None
_BASE_URL = None


def _init():
    global _PIPELINE, _BASE_URL
    if _PIPELINE is None:
        cfg = load_config()
        s3 = boto3.client("s3", region_name=cfg["REGION"], config=Config(signature_version="s3v4"))
        _PIPELINE = ResizePipeline.from_config(cfg, s3)
        _BASE_URL = cfg["URL"]
    return _PIPELINE, _BASE_URL


# -------- Responses --------
def not_found():
    return {"statusCode": 404, "headers": {}, "body": ""}


def redirect(location):
    return {"statusCode": 301, "headers": {"location": location}, "body": ""}


def handle_key(key, pipeline, base_url):
    req = parse_key(key)
    if req is None:
        log.info("Not found: unrecognized key %r", key)
        return not_found()

    try:
        artifact = pipeline.materialize(req)
    except ObjectNotFound as e:
        log.info("Not found: %s", e)
        return not_found()
    except ResizeError as e:
        log.warning("Failed to derive %s: %s", key, e)
        raise

    location = f"{base_url}/{artifact.storage_key}"
    log.info("Redirecting %s -> %s", key, location)
    return redirect(location)


def lambda_handler(event, context):
    params = (event or {}).get("queryStringParameters") or {}
    pipeline, base_url = _init()
    return handle_key(params.get("key"), pipeline, base_url)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit(f"usage: {sys.argv[0]} resize/<W>x<H>/<filename>")
    print(json.dumps(lambda_handler({"queryStringParameters": {"key": sys.argv[1]}}, None), indent=2))
