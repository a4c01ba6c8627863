import io

import pytest
from botocore.exceptions import ClientError
from PIL import Image


def make_image(fmt="JPEG", size=(64, 48), mode="RGB", color=(200, 30, 30)):
    out = io.BytesIO()
    Image.new(mode, size, color).save(out, format=fmt)
    return out.getvalue()


class FakeS3:
    """In-memory stand-in for the two boto3 S3 calls the pipeline makes."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.put_error = None

    def add(self, key, body, content_type):
        self.objects[key] = (body, content_type)

    def get_object(self, Bucket, Key):
        self.calls.append(("get_object", Key))
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        body, content_type = self.objects[Key]
        return {"Body": io.BytesIO(body), "ContentType": content_type}

    def put_object(self, **kwargs):
        self.calls.append(("put_object", kwargs["Key"]))
        if self.put_error:
            raise self.put_error
        self.objects[kwargs["Key"]] = (kwargs["Body"], kwargs["ContentType"])
        self.last_put = kwargs
        return {}

    def ops(self, name):
        return [key for op, key in self.calls if op == name]


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")


@pytest.fixture
def png_bytes():
    return make_image("PNG", mode="RGBA", color=(0, 0, 255, 128))
