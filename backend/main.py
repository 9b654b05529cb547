import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from analytics import InsightService, build_report
from assistant import Assistant
from capture import TaskCapture
from config import Settings
from database import (
    InvalidTransition,
    Store,
    TaskStore,
    get_conversation,
    save_conversation,
)
from llm import LLMClient, LLMError, LLMUnavailable
from models import (
    AnalyticsReport,
    ChatRequest,
    ChatResponse,
    Insight,
    ParseRequest,
    PriorityStatus,
    Task,
    TaskDraft,
    TaskUpdate,
)
from prioritizer import PrioritizationCoordinator
from priority_cache import PriorityCache
from ranking import AnthropicRankingOracle, RankingOracle

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    llm: Optional[LLMClient] = None,
    oracle: Optional[RankingOracle] = None,
    clock: Callable[[], datetime] = datetime.now,
    run_migrations: bool = True,
    seed_demo_tasks: bool = True,
) -> FastAPI:
    """Wire the store, AI collaborators and coordinator into a FastAPI app."""
    settings = settings or Settings.from_env()
    store = store or Store(settings.db_path)
    llm = llm or LLMClient.from_settings(settings)

    tasks = TaskStore(store)
    cache = PriorityCache(store, ttl=timedelta(seconds=settings.cache_ttl_seconds), clock=clock)
    coordinator = PrioritizationCoordinator(cache, oracle or AnthropicRankingOracle(llm), clock=clock)
    capture = TaskCapture(llm)
    insights = InsightService(llm, store, clock=clock)
    assistant = Assistant(llm, capture, tasks, clock=clock)

    async def reprioritize_and_save(force: bool) -> list[Task]:
        ordered = await coordinator.reprioritize(tasks.list_tasks(), force=force)
        return tasks.save_order(ordered)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # Startup
        if run_migrations:
            store.init_db()
        if seed_demo_tasks:
            tasks.seed_if_empty(now=clock())
        current = await reprioritize_and_save(force=False)
        logger.info(f"FlowMind started with {len(current)} tasks (db={store.db_path})")
        yield
        # Shutdown (nothing to do)

    app = FastAPI(title="FlowMind", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/tasks")
    def get_tasks() -> list[Task]:
        return tasks.list_tasks()

    @app.post("/tasks/parse")
    async def parse_task(request: ParseRequest) -> TaskDraft:
        """Preview how free text would be turned into a task."""
        try:
            return await capture.parse(request.text, today=clock().date())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/tasks")
    async def create_task(draft: TaskDraft) -> dict:
        task = tasks.add_task(draft, now=clock())
        # A new task always gets a fresh ranking
        ordered = await reprioritize_and_save(force=True)
        return {"task": task, "tasks": ordered}

    @app.patch("/tasks/{task_id}")
    def update_task(task_id: str, task_data: TaskUpdate) -> Task:
        result = tasks.update_task(task_id, **task_data.model_dump(exclude_unset=True))
        if not result:
            raise HTTPException(status_code=404, detail="Task not found")
        return result

    @app.post("/tasks/{task_id}/done")
    def complete_task(task_id: str) -> Task:
        try:
            result = tasks.complete_task(task_id, now=clock())
        except InvalidTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        if not result:
            raise HTTPException(status_code=404, detail="Task not found")
        return result

    @app.delete("/tasks/{task_id}")
    def delete_task(task_id: str) -> dict:
        if not tasks.delete_task(task_id):
            raise HTTPException(status_code=404, detail="Task not found")
        return {"status": "deleted"}

    @app.post("/tasks/reprioritize")
    async def reprioritize(force: bool = False) -> list[Task]:
        return await reprioritize_and_save(force=force)

    @app.get("/priority/status")
    def priority_status() -> PriorityStatus:
        return coordinator.status()

    @app.get("/analytics")
    def get_analytics() -> AnalyticsReport:
        return build_report(tasks.list_tasks(), today=clock().date())

    @app.get("/analytics/insight")
    def get_insight() -> Optional[Insight]:
        return insights.latest()

    @app.post("/analytics/insight")
    async def refresh_insight() -> Insight:
        report = build_report(tasks.list_tasks(), today=clock().date())
        try:
            return await insights.generate(report)
        except LLMUnavailable:
            raise HTTPException(status_code=503, detail="API key not configured")
        except LLMError as e:
            raise HTTPException(status_code=502, detail=f"API error: {e}")

    @app.get("/conversation")
    def get_conversation_endpoint() -> list[dict]:
        """Get saved conversation history."""
        return get_conversation(store)

    @app.post("/chat")
    async def chat(chat_request: ChatRequest) -> ChatResponse:
        """Answer through Claude; may add a task the user asked for."""
        reply = await assistant.reply(chat_request.messages)

        conversation = [m.model_dump() for m in chat_request.messages]
        conversation.append({"role": "assistant", "content": reply.text})
        save_conversation(store, conversation)

        if reply.added_task:
            current = await reprioritize_and_save(force=True)
        else:
            current = tasks.list_tasks()
        return ChatResponse(response=reply.text, added_task=reply.added_task, tasks=current)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
