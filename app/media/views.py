"""
API views for chunked uploads and batch downloads, plus the storage relay.

Provides:
- UploadInitView: Begin an upload session
- UploadBlockUrlsView: Issue pre-signed URLs for upload blocks
- UploadStatusView: Poll an upload session
- UploadProgressView: Report client-side progress
- UploadCompleteView: Commit an upload and process it
- BatchDownloadView: Request an archive of several media
- DownloadStatusView: Poll a batch archive
- ObjectRelayView: Development object store endpoint (block protocol, reads)

Domain errors raised by the services are translated with
core.views.error_response.
"""

from __future__ import annotations

from io import BytesIO

from django.http import FileResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, NotFoundError, ValidationError
from core.views import error_response
from media.serializers import (
    BatchDownloadSerializer,
    BlockUrlsRequestSerializer,
    BlockUrlsSerializer,
    DownloadJobSerializer,
    DownloadStatusSerializer,
    UploadCommitResultSerializer,
    UploadCompleteSerializer,
    UploadInitSerializer,
    UploadProgressSerializer,
    UploadSessionStatusSerializer,
    UploadTargetSerializer,
)
from media.services.chunked_upload import parse_block_list
from media.services.downloads import get_download_service
from media.services.storage import (
    LocalObjectStoreGateway,
    Permission,
    get_object_store,
)
from media.services.uploads import get_upload_service


def _session_status_response(service, session) -> Response:
    media = service.media_for(session) if session.is_terminal else None
    serializer = UploadSessionStatusSerializer(
        session,
        context={"media_id": media.id if media else None},
    )
    return Response(serializer.data)


# =============================================================================
# Uploads
# =============================================================================


class UploadInitView(APIView):
    """
    Begin a chunked upload.

    POST /api/v1/media/uploads/init
        Create an upload session and issue a pre-signed write URL.

    Authentication:
        Requires valid JWT token.

    Request:
        - filename (required): Original filename
        - fileSize (required): Declared size in bytes (max 10 GiB)
        - mimeType (required): Must be an allowed image or video type
        - collectionId (optional): Album to add the media to

    Response:
        201 Created: sessionId, uploadUrl, blockSize, commitFormat, expiresAt
        400 Bad Request: Malformed request
        404 Not Found: Unknown album
        413 Payload Too Large: Declared size over the limit
        415 Unsupported Media Type: MIME type not allowed
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="init_upload",
        summary="Begin upload",
        description=(
            "Create an upload session. The client requests block URLs, stages "
            "fixed-size blocks directly against the object store, commits them "
            "through uploadUrl in the returned commitFormat, then calls the "
            "complete endpoint. The URLs expire after 60 minutes."
        ),
        request=UploadInitSerializer,
        responses={
            201: OpenApiResponse(
                response=UploadTargetSerializer,
                description="Session created with upload URL",
            ),
            400: OpenApiResponse(description="Malformed request"),
            404: OpenApiResponse(description="Album not found"),
            413: OpenApiResponse(description="Declared size exceeds the limit"),
            415: OpenApiResponse(description="MIME type not allowed"),
        },
        tags=["Media - Uploads"],
    )
    def post(self, request):
        """Begin an upload session."""
        serializer = UploadInitSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            target = get_upload_service().begin(
                user=request.user,
                filename=data["filename"],
                file_size=data["fileSize"],
                mime_type=data["mimeType"],
                collection_id=data.get("collectionId"),
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            UploadTargetSerializer(target).data,
            status=status.HTTP_201_CREATED,
        )


class UploadBlockUrlsView(APIView):
    """
    Issue pre-signed block URLs.

    POST /api/v1/media/uploads/{session_id}/blocks
        One write URL per requested block id, valid until the session
        expires. The client PUTs each block straight to its URL.

    Request:
        - blockIds (required): Block ids (base64 of the zero-padded ordinal)

    Response:
        200 OK: blockUrls (block id -> URL), expiresAt
        400 Bad Request: Malformed or out-of-range block ids
        404 Not Found: Session not found or not owned by user
        409 Conflict: Session no longer accepts blocks
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="issue_upload_block_urls",
        summary="Issue block URLs",
        request=BlockUrlsRequestSerializer,
        responses={
            200: OpenApiResponse(
                response=BlockUrlsSerializer,
                description="Pre-signed URL per block",
            ),
            400: OpenApiResponse(description="Invalid block ids"),
            404: OpenApiResponse(description="Session not found or not owned by user"),
            409: OpenApiResponse(description="Session no longer accepts blocks"),
        },
        tags=["Media - Uploads"],
    )
    def post(self, request, session_id):
        serializer = BlockUrlsRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = get_upload_service().issue_block_urls(
                session_id,
                request.user,
                serializer.validated_data["blockIds"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        return Response(BlockUrlsSerializer(result).data)


class UploadStatusView(APIView):
    """
    Poll an upload session.

    GET /api/v1/media/uploads/{session_id}/status
        Status, progress, committed blocks and, once completed, the media id.
        A session whose URL expired reads as failed.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_upload_status",
        summary="Get upload status",
        responses={
            200: OpenApiResponse(
                response=UploadSessionStatusSerializer,
                description="Session status",
            ),
            404: OpenApiResponse(description="Session not found or not owned by user"),
        },
        tags=["Media - Uploads"],
    )
    def get(self, request, session_id):
        service = get_upload_service()
        try:
            session = service.get_status(session_id, request.user)
        except BaseApplicationError as e:
            return error_response(e)
        return _session_status_response(service, session)


class UploadProgressView(APIView):
    """
    Report client-side upload progress.

    POST /api/v1/media/uploads/{session_id}/progress
        Best-effort. The recorded count never decreases.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="report_upload_progress",
        summary="Report upload progress",
        request=UploadProgressSerializer,
        responses={
            200: OpenApiResponse(
                response=UploadSessionStatusSerializer,
                description="Updated session status",
            ),
            404: OpenApiResponse(description="Session not found or not owned by user"),
            409: OpenApiResponse(description="Session no longer accepts progress"),
        },
        tags=["Media - Uploads"],
    )
    def post(self, request, session_id):
        serializer = UploadProgressSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        service = get_upload_service()
        try:
            session = service.record_progress(
                session_id,
                request.user,
                serializer.validated_data["uploadedBytes"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        return _session_status_response(service, session)


class UploadCompleteView(APIView):
    """
    Commit an upload.

    POST /api/v1/media/uploads/{session_id}/complete
        Called after the block list has been committed to storage.

    Response:
        200 OK: Processed inline; mediaId, previewUrl (images), originalUrl
        202 Accepted: Processing deferred; poll the status endpoint
        404 Not Found: Unknown session
        409 Conflict: Session already processing, failed or expired
        502 Bad Gateway: Storage failed while processing
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="complete_upload",
        summary="Complete upload",
        description=(
            "Commit the upload. Retrying a commit that already completed "
            "returns the same media without creating a duplicate."
        ),
        request=UploadCompleteSerializer,
        responses={
            200: OpenApiResponse(
                response=UploadCommitResultSerializer,
                description="Upload processed",
            ),
            202: OpenApiResponse(
                response=UploadCommitResultSerializer,
                description="Upload accepted, processing in background",
            ),
            404: OpenApiResponse(description="Session not found or not owned by user"),
            409: OpenApiResponse(description="Session cannot be committed"),
            502: OpenApiResponse(description="Storage failure during processing"),
        },
        tags=["Media - Uploads"],
    )
    def post(self, request, session_id):
        serializer = UploadCompleteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = get_upload_service().commit(
                session_id,
                request.user,
                serializer.validated_data["blockIds"],
                serializer.validated_data.get("metadata") or {},
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            UploadCommitResultSerializer(result).data,
            status=status.HTTP_202_ACCEPTED if result.deferred else status.HTTP_200_OK,
        )


# =============================================================================
# Downloads
# =============================================================================


class BatchDownloadView(APIView):
    """
    Request a ZIP archive of several media.

    POST /api/v1/media/downloads/batch
        All ids must resolve to the caller's media, otherwise nothing is
        created. Assembly runs in the background.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="request_batch_download",
        summary="Request batch download",
        request=BatchDownloadSerializer,
        responses={
            202: OpenApiResponse(
                response=DownloadJobSerializer,
                description="Download job created",
            ),
            400: OpenApiResponse(description="Malformed request"),
            404: OpenApiResponse(description="At least one media id not found"),
        },
        tags=["Media - Downloads"],
    )
    def post(self, request):
        serializer = BatchDownloadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            job = get_download_service().request_batch(
                request.user, serializer.validated_data["mediaIds"]
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            DownloadJobSerializer(job).data,
            status=status.HTTP_202_ACCEPTED,
        )


class DownloadStatusView(APIView):
    """
    Poll a batch download.

    GET /api/v1/media/downloads/{download_id}
        downloadUrl, expiresAt and size are present only once ready. After
        the retention window the job answers 404 DOWNLOAD_EXPIRED.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_batch_download",
        summary="Get batch download status",
        responses={
            200: OpenApiResponse(
                response=DownloadStatusSerializer,
                description="Download job status",
            ),
            404: OpenApiResponse(description="Download not found or expired"),
        },
        tags=["Media - Downloads"],
    )
    def get(self, request, download_id):
        try:
            result = get_download_service().poll(download_id, request.user)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(DownloadStatusSerializer(result).data)


# =============================================================================
# Storage Relay
# =============================================================================


def _relay_gateway() -> LocalObjectStoreGateway:
    """The local gateway, or 404 when a real object store serves the URLs."""
    gateway = get_object_store()
    if not isinstance(gateway, LocalObjectStoreGateway):
        raise NotFoundError(
            "Storage relay is disabled for this object store",
            error_code="RELAY_DISABLED",
        )
    return gateway


class ObjectRelayView(APIView):
    """
    Object store endpoint addressed by pre-signed URLs.

    PUT /storage/uploads/{path}?sig=...&comp=block&blockid={id}
        Stage one block (raw bytes, streamed to disk).
    PUT /storage/uploads/{path}?sig=...&comp=blocklist
        Commit an ordered <BlockList> XML body.
    GET /storage/{container}/{path}?sig=...
        Read an object.

    Mounted for the local object store only (development and tests); with
    the S3 backend clients talk to the bucket and every relay request is
    answered with 404. The signature is the only credential; user
    authentication is ignored.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def perform_content_negotiation(self, request, force=False):
        # Object reads ignore Accept; errors fall back to the first renderer
        return super().perform_content_negotiation(request, force=True)

    @extend_schema(
        operation_id="relay_put_object",
        summary="Stage block or commit block list",
        parameters=[
            OpenApiParameter("sig", OpenApiTypes.STR, OpenApiParameter.QUERY),
            OpenApiParameter(
                "comp",
                OpenApiTypes.STR,
                OpenApiParameter.QUERY,
                enum=["block", "blocklist"],
            ),
            OpenApiParameter(
                "blockid", OpenApiTypes.STR, OpenApiParameter.QUERY, required=False
            ),
        ],
        request={"application/octet-stream": {"type": "string", "format": "binary"}},
        responses={
            201: OpenApiResponse(description="Block staged or block list committed"),
            400: OpenApiResponse(description="Invalid block id or block list"),
            403: OpenApiResponse(description="Signature missing, invalid or expired"),
            404: OpenApiResponse(description="Relay disabled"),
            413: OpenApiResponse(description="Block too large"),
        },
        tags=["Storage"],
    )
    def put(self, request, container, object_path):
        operation = request.query_params.get("comp")

        try:
            gateway = _relay_gateway()
            if operation == "block":
                gateway.verify_signature(
                    request.query_params.get("sig"),
                    container,
                    object_path,
                    Permission.STAGE_BLOCK,
                )
                # Raw stream; request.body would buffer the whole block
                stream = request.stream or BytesIO()
                size = gateway.stage_block(
                    object_path, request.query_params.get("blockid", ""), stream
                )
                return Response({"size": size}, status=status.HTTP_201_CREATED)

            if operation == "blocklist":
                gateway.verify_signature(
                    request.query_params.get("sig"),
                    container,
                    object_path,
                    Permission.COMMIT_BLOCK_LIST,
                )
                block_ids = parse_block_list(request.body)
                size = gateway.commit_block_list(object_path, block_ids)
                return Response({"size": size}, status=status.HTTP_201_CREATED)

            raise ValidationError(
                "Unsupported storage operation",
                error_code="UNSUPPORTED_OPERATION",
                details={"comp": operation},
            )
        except BaseApplicationError as e:
            return error_response(e)

    @extend_schema(
        operation_id="relay_get_object",
        summary="Read object",
        parameters=[OpenApiParameter("sig", OpenApiTypes.STR, OpenApiParameter.QUERY)],
        responses={
            (200, "application/octet-stream"): OpenApiTypes.BINARY,
            403: OpenApiResponse(description="Signature missing, invalid or expired"),
            404: OpenApiResponse(description="Object not found or relay disabled"),
        },
        tags=["Storage"],
    )
    def get(self, request, container, object_path):
        try:
            gateway = _relay_gateway()
            payload = gateway.verify_signature(
                request.query_params.get("sig"),
                container,
                object_path,
                Permission.READ,
            )
            fileobj = gateway.open(container, object_path)
        except BaseApplicationError as e:
            return error_response(e)

        download_name = payload.get("dn")
        return FileResponse(
            fileobj,
            as_attachment=bool(download_name),
            filename=download_name or object_path.rsplit("/", 1)[-1],
        )
