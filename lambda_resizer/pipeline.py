"""
Resize pipeline: key parsing, format resolution and derived artifact
materialization.

A request key ``resize/<W>x<H>/<filename>`` names a derived artifact of the
original stored at ``original/<filename>``. The pipeline fetches the original,
resizes it to exactly WxH and writes the result back under the request key.
"""
import io, re, logging
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image

log = logging.getLogger("resizer.pipeline")

KEY_RE = re.compile(r"resize/([0-9]+)x([0-9]+)/(.+)", re.DOTALL)

ORIGINAL_PREFIX = "original/"

ADAPTIVE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/pjpeg": "jpeg",
    "image/png": "png",
}

# Pillow modes each encoder can write without conversion
_JPEG_MODES = ("RGB", "L", "CMYK")
_PNG_MODES = ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16")

_MISSING_CODES = ("NoSuchKey", "404", "NotFound")


# -------- Errors --------
class ResizeError(Exception):
    pass


class ObjectNotFound(ResizeError):
    pass


class UpstreamError(ResizeError):
    pass


class TransformError(ResizeError):
    pass


# -------- Types --------
@dataclass(frozen=True)
class ResizeRequest:
    width: int
    height: int
    filename: str
    raw_key: str

    @property
    def original_key(self) -> str:
        return ORIGINAL_PREFIX + self.filename


@dataclass(frozen=True)
class OriginalObject:
    content_type: str
    body: bytes


@dataclass(frozen=True)
class DerivedArtifact:
    body: bytes
    content_type: str
    storage_key: str


# -------- Request decoder --------
def parse_key(key):
    """Return a ResizeRequest for ``resize/<W>x<H>/<path>``, or None."""
    if not isinstance(key, str):
        return None
    m = KEY_RE.match(key)
    if not m:
        return None
    return ResizeRequest(width=int(m.group(1), 10), height=int(m.group(2), 10),
                         filename=m.group(3), raw_key=key)


# -------- Format resolver --------
def resolve_format(content_type, mode="adaptive"):
    """Map an original's content type to (encoding, output content type)."""
    if mode == "fixed-png":
        fmt = "png"
    else:
        fmt = ADAPTIVE_FORMATS.get(content_type, "png")
    return fmt, f"image/{fmt}"


# -------- Transform --------
def transform(body: bytes, width: int, height: int, fmt: str) -> bytes:
    """Hard resize to exactly width x height and encode as ``fmt``."""
    try:
        with Image.open(io.BytesIO(body)) as im:
            resized = im.resize((width, height))
        if fmt == "jpeg" and resized.mode not in _JPEG_MODES:
            resized = resized.convert("RGB")
        elif fmt == "png" and resized.mode not in _PNG_MODES:
            resized = resized.convert("RGBA" if resized.mode.endswith("A") else "RGB")
        out = io.BytesIO()
        resized.save(out, format=fmt.upper())
        return out.getvalue()
    except Exception as e:
        raise TransformError(f"Cannot resize to {width}x{height} as {fmt}: {e}") from e


# -------- Materializer --------
class ResizePipeline:
    """Fetch -> transform -> store for a single ResizeRequest.

    ``s3`` is any object exposing boto3's ``get_object``/``put_object``.
    """

    def __init__(self, s3, bucket, format_mode="adaptive",
                 storage_class="REDUCED_REDUNDANCY",
                 cache_control="max-age=31536000, public"):
        self.s3 = s3
        self.bucket = bucket
        self.format_mode = format_mode
        self.storage_class = storage_class
        self.cache_control = cache_control

    @classmethod
    def from_config(cls, cfg, s3):
        return cls(s3, cfg["BUCKET"], format_mode=cfg["FORMAT_MODE"],
                   storage_class=cfg["STORAGE_CLASS"], cache_control=cfg["CACHE_CONTROL"])

    def fetch(self, req: ResizeRequest) -> OriginalObject:
        key = req.original_key
        log.debug("Fetching s3://%s/%s", self.bucket, key)
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
            body = obj["Body"].read()
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise ObjectNotFound(f"Original not found: {key}") from e
            raise UpstreamError(f"get_object failed for {key}: {code}") from e
        except BotoCoreError as e:
            raise UpstreamError(f"get_object failed for {key}: {e}") from e
        return OriginalObject(content_type=obj.get("ContentType", ""), body=body)

    def store(self, artifact: DerivedArtifact):
        log.debug("Writing s3://%s/%s (%s, %d bytes)", self.bucket, artifact.storage_key,
                  artifact.content_type, len(artifact.body))
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=artifact.storage_key,
                Body=artifact.body,
                ContentType=artifact.content_type,
                StorageClass=self.storage_class,
                CacheControl=self.cache_control,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(f"put_object failed for {artifact.storage_key}: {e}") from e

    def materialize(self, req: ResizeRequest) -> DerivedArtifact:
        original = self.fetch(req)
        fmt, content_type = resolve_format(original.content_type, self.format_mode)
        body = transform(original.body, req.width, req.height, fmt)
        artifact = DerivedArtifact(body=body, content_type=content_type, storage_key=req.raw_key)
        self.store(artifact)
        log.info("Materialized %s (%s, %d bytes) from %s",
                 artifact.storage_key, content_type, len(body), req.original_key)
        return artifact
