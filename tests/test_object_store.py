import boto3
import pytest
from botocore.stub import Stubber

from services.object_store import ObjectStoreError, S3ObjectStore, build_object_url, object_key_for


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="eu-west-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


def test_multipart_calls_pass_through(s3_client):
    store = S3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "create_multipart_upload",
            {"UploadId": "u-1"},
            {"Bucket": "videos", "Key": "clip.mp4", "ContentType": "video/mp4"},
        )
        stubber.add_response(
            "upload_part",
            {"ETag": '"abc"'},
            {"Bucket": "videos", "Key": "clip.mp4", "UploadId": "u-1", "PartNumber": 1, "Body": b"A"},
        )
        stubber.add_response(
            "complete_multipart_upload",
            {},
            {
                "Bucket": "videos",
                "Key": "clip.mp4",
                "UploadId": "u-1",
                "MultipartUpload": {"Parts": [{"PartNumber": 1, "ETag": '"abc"'}]},
            },
        )

        assert store.create_multipart_upload("videos", "clip.mp4", "video/mp4") == "u-1"
        assert store.upload_part("videos", "clip.mp4", "u-1", 1, b"A") == '"abc"'
        store.complete_multipart_upload("videos", "clip.mp4", "u-1", [{"PartNumber": 1, "ETag": '"abc"'}])
        stubber.assert_no_pending_responses()


def test_client_error_is_translated(s3_client):
    store = S3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "abort_multipart_upload",
            service_error_code="NoSuchUpload",
            service_message="The specified upload does not exist",
            http_status_code=404,
        )

        with pytest.raises(ObjectStoreError) as exc_info:
            store.abort_multipart_upload("videos", "clip.mp4", "u-1")

    err = exc_info.value
    assert err.operation == "AbortMultipartUpload"
    assert err.code == "NoSuchUpload"
    assert "does not exist" in str(err)


def test_list_multipart_uploads_pages(s3_client):
    store = S3ObjectStore(s3_client)
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "list_multipart_uploads",
            {
                "Uploads": [{"Key": "uploads/a.mp4", "UploadId": "u-1"}],
                "IsTruncated": True,
                "NextKeyMarker": "uploads/a.mp4",
                "NextUploadIdMarker": "u-1",
            },
        )
        stubber.add_response(
            "list_multipart_uploads",
            {"Uploads": [{"Key": "uploads/b.mp4", "UploadId": "u-2"}], "IsTruncated": False},
        )

        uploads = list(store.list_multipart_uploads("videos", "uploads/"))

    assert [u["UploadId"] for u in uploads] == ["u-1", "u-2"]


def test_download_url_is_presigned(s3_client):
    url = S3ObjectStore(s3_client).generate_download_url("videos", "clip.mp4", 60)

    assert "clip.mp4" in url
    assert "Expires=60" in url or "X-Amz-Expires=60" in url


@pytest.mark.parametrize(
    "prefix, file_name, expected",
    [
        ("", "clip.mp4", "clip.mp4"),
        ("uploads/", "clip.mp4", "uploads/clip.mp4"),
        ("/uploads", "/nested/clip.mp4", "uploads/nested/clip.mp4"),
        ("uploads", "../clip.mp4", "uploads/clip.mp4"),
        ("uploads", "/", ""),
        ("uploads", "./a//b.mp4", "uploads/a/b.mp4"),
    ],
)
def test_object_key_for(prefix, file_name, expected):
    assert object_key_for(prefix, file_name) == expected


def test_object_url_for_aws(settings):
    assert build_object_url(settings, "a/b c.mp4") == "https://videos.s3.eu-west-1.amazonaws.com/a/b%20c.mp4"
