"""
Story endpoints.

Each handler only sequences: authenticate, validate, delegate to the
orchestrator or accountant, wrap the result in the response envelope.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...core.accounting import UsageAccountant
from ...core.orchestrator import StoryOrchestrator
from ...storage.repository import HISTORY_LIMIT, ConversationStore
from ..auth import get_current_user_id
from ..responses import envelope
from ..schemas import GenerateStoryRequest, RefineLineRequest, SuggestPathsRequest

router = APIRouter(prefix="/api/ai", tags=["ai"])


def get_orchestrator(request: Request) -> StoryOrchestrator:
    return request.app.state.orchestrator


def get_conversations(request: Request) -> ConversationStore:
    return request.app.state.conversations


def get_accountant(request: Request) -> UsageAccountant:
    return request.app.state.accountant


@router.post("/suggest-paths")
def suggest_paths(
    body: SuggestPathsRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: StoryOrchestrator = Depends(get_orchestrator)
):
    """Suggest three narrative directions for the user's idea."""
    result = orchestrator.suggest_paths(user_id, body.user_input)
    data = result.payload.model_dump()
    data["language"] = result.language
    return envelope(data, usage=result.usage_dict())


@router.post("/generate-story")
def generate_story(
    body: GenerateStoryRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: StoryOrchestrator = Depends(get_orchestrator)
):
    """Write a five-line story from the idea and chosen direction."""
    selected_path = body.selected_path.model_dump() if body.selected_path else None
    result = orchestrator.generate_story(
        user_id,
        body.user_input,
        selected_path=selected_path,
        custom_direction=body.custom_direction
    )
    data = result.payload.model_dump()
    # Lines are also exposed at the top level for clients reading data.line1..line5
    data.update(data["story"])
    data["conversationId"] = result.conversation.id
    return envelope(data, usage=result.usage_dict())


@router.post("/refine-line")
def refine_line(
    body: RefineLineRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: StoryOrchestrator = Depends(get_orchestrator)
):
    """Rewrite one line of a story following the user's suggestion."""
    result = orchestrator.refine_line(
        user_id,
        body.story.model_dump(),
        body.line_number,
        body.suggestion,
        conversation_id=body.conversation_id
    )
    data = result.payload.model_dump()
    data["conversationId"] = result.conversation.id
    return envelope(data, usage=result.usage_dict())


@router.get("/history")
def history(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=HISTORY_LIMIT),
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationStore = Depends(get_conversations)
):
    """The caller's most recent stories, newest first."""
    configured = request.app.state.config.history_limit
    rows = conversations.list_recent(user_id, min(limit or configured, configured))
    return envelope([row.to_dict() for row in rows])


@router.delete("/history/{conversation_id}")
def delete_history_entry(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: StoryOrchestrator = Depends(get_orchestrator)
):
    orchestrator.delete_story(user_id, conversation_id)
    return envelope({"id": conversation_id})


@router.get("/usage")
def usage(
    user_id: str = Depends(get_current_user_id),
    accountant: UsageAccountant = Depends(get_accountant)
):
    """Current-month counters, limits and spend."""
    return envelope(accountant.summary(user_id).to_dict())
