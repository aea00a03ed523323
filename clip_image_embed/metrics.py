from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

REQ_TOTAL = Counter("clip_image_requests_total", "Embedding requests")
ERRORS_TOTAL = Counter("clip_image_errors_total", "Failed embedding requests", ["stage"])
EMBED_LATENCY = Histogram("clip_image_embed_seconds", "Preprocess + inference latency in seconds")


def metrics_response() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
