import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from .env file
load_dotenv()

from .agents.idea_analysis.http_client import close_client  # noqa: E402
from .database import Base, engine  # noqa: E402
from .models import Competitor, Idea  # noqa: E402,F401
from .routes.ideas import router as ideas_router  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    print("Starting Idea Risk & Competitor Analysis Service")
    print(f"   OpenAI Key:  {'✅ Configured' if os.getenv('OPENAI_API_KEY') else '❌ Not set (analysis runs will fail)'}")
    print(f"   Serper Key:  {'✅ Configured' if os.getenv('SERPER_API_KEY') else '❌ Not set (analysis runs will fail)'}")
    Base.metadata.create_all(bind=engine)
    print("   Ready to analyze startup ideas!")

    yield

    await close_client()
    print("Shutting down Idea Risk & Competitor Analysis Service")


app = FastAPI(
    title="Idea Risk & Competitor Analysis API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # Next.js dev server
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ideas_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Idea Risk Analyzer",
        "version": "0.1.0",
        "description": "Risk scoring and competitor analysis for startup ideas",
        "docs": "/docs",
        "endpoints": {
            "submit": "POST /ideas/ - Submit an idea",
            "analyze": "POST /ideas/{id}/analyze - Start an analysis run",
            "analysis": "GET /ideas/{id}/analysis - Completed analysis",
            "competitors": "GET /ideas/{id}/competitors - Stored competitors",
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "idea-risk-analyzer",
        "version": "0.1.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logging.getLogger(__name__).exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "false").lower() == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "idea_risk.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "true").lower() == "true",
    )
