#!/usr/bin/env python3
"""
Webhook Handler
===============

FastAPI server exposing the pipeline to the video creator form.

The form posts ``script``, ``backgroundImageUrl`` and ``creatorId``; the
response is ``{"finalVideoPath": ...}`` or ``{"error": ...}``.

Usage:
    uvicorn examples.webhook_handler:app --port 8000
"""

import logging
from typing import Optional

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import JSONResponse

from avatar_shorts import Config, PipelineError, PipelineRequest, ShortsPipeline

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(
    title="Avatar Shorts API",
    description="Generate vertical avatar videos from a script and a background image",
    version="0.1.0",
)

# Global pipeline instance
pipeline: Optional[ShortsPipeline] = None

# Failure kinds caused by the caller rather than by an upstream service
CLIENT_ERROR_KINDS = {"ValidationError"}


@app.on_event("startup")
async def startup():
    """Load config and build the pipeline; fails startup on missing keys."""
    global pipeline
    pipeline = ShortsPipeline(Config.load())


@app.on_event("shutdown")
async def shutdown():
    """Cleanup on shutdown."""
    if pipeline:
        await pipeline.close()


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "pipeline_ready": pipeline is not None}


@app.post("/api/create-video")
async def create_video(
    script: str = Form(""),
    backgroundImageUrl: str = Form(""),
    creatorId: str = Form(""),
):
    """Run the whole pipeline for one form submission."""
    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    request = PipelineRequest.from_form(
        {"script": script, "backgroundImageUrl": backgroundImageUrl, "creatorId": creatorId}
    )
    outcome = await pipeline.run_pipeline(request)

    if isinstance(outcome, PipelineError):
        status = 400 if outcome.kind in CLIENT_ERROR_KINDS else 502
        return JSONResponse(status_code=status, content=outcome.to_dict())

    body = {"finalVideoPath": outcome.final_artifact_path}
    if outcome.final_artifact_url:
        body["finalVideoUrl"] = outcome.final_artifact_url
    return body


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
