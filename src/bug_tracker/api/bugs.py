import logging

from fastapi import APIRouter, Depends, Query, status

from bug_tracker.api.deps import (
    audit_identity,
    get_app_settings,
    get_bugs,
    get_comments,
    get_edits,
    get_users,
    require_login,
    require_permission,
    valid_id,
)
from bug_tracker.config import Settings
from bug_tracker.db.queries import parse_age, parse_positive_int
from bug_tracker.db.repository import BugRepository, CommentRepository, EditRepository, UserRepository
from bug_tracker.errors import NotFoundError
from bug_tracker.models.models import Bug
from bug_tracker.schemas.bugs import (
    BugAssign,
    BugClassify,
    BugClose,
    BugCreate,
    BugPage,
    BugPublic,
    BugStatus,
    BugUpdate,
    Classification,
    CommentCreate,
    CommentPublic,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _found(bug: Bug | None, bug_id: str) -> BugPublic:
    if bug is None:
        raise NotFoundError(f"Bug {bug_id} not found.")
    return BugPublic.model_validate(bug)


@router.get("/list", response_model=BugPage)
async def list_bugs(
    keywords: str | None = Query(default=None),
    classification: Classification | None = Query(default=None),
    status: BugStatus | None = Query(default=None),
    closed: bool | None = Query(default=None),
    min_age: str | None = Query(default=None, alias="minAge"),
    max_age: str | None = Query(default=None, alias="maxAge"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    page_size: str | None = Query(default=None, alias="pageSize"),
    page_number: str | None = Query(default=None, alias="pageNumber"),
    bugs: BugRepository = Depends(get_bugs),
    settings: Settings = Depends(get_app_settings),
    _auth: dict = Depends(require_login),
):
    page = await bugs.get_all_bugs(
        keywords=keywords,
        classification=classification,
        status=status,
        closed=closed,
        min_age=parse_age(min_age),
        max_age=parse_age(max_age),
        sort_by=sort_by,
        page_size=parse_positive_int(page_size, settings.default_page_size),
        page_number=page_number,
    )
    return BugPage(
        bugs=[BugPublic.model_validate(b) for b in page.items],
        total_bugs=page.total,
        total_pages=page.total_pages,
        page_number=page.page_number,
        page_size=page.page_size,
    )


@router.post("/new", response_model=BugPublic, status_code=status.HTTP_201_CREATED)
async def create_bug(
    payload: BugCreate,
    bugs: BugRepository = Depends(get_bugs),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canCreateBug")),
):
    bug = await bugs.create_bug(
        title=payload.title,
        description=payload.description,
        steps_to_reproduce=payload.steps_to_reproduce,
        created_by_user_id=auth["_id"],
        created_by_name=auth.get("name"),
    )
    await edits.save_audit_log(
        "bugs", "insert", {"_id": bug.id}, update=payload.model_dump(by_alias=True), auth=audit_identity(auth)
    )
    return BugPublic.model_validate(bug)


@router.get("/{bugId}", response_model=BugPublic)
async def get_bug(
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    _auth: dict = Depends(require_login),
):
    return _found(await bugs.get_bug_by_id(bug_id), bug_id)


@router.patch("/{bugId}", response_model=BugPublic)
async def update_bug(
    payload: BugUpdate,
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canEditAnyBug")),
):
    fields = payload.model_dump(exclude_none=True)
    result = _found(await bugs.update_bug(bug_id, fields), bug_id)
    await edits.save_audit_log(
        "bugs", "update", {"_id": bug_id}, update=payload.model_dump(exclude_none=True, by_alias=True),
        auth=audit_identity(auth),
    )
    return result


@router.patch("/{bugId}/classify", response_model=BugPublic)
async def classify_bug(
    payload: BugClassify,
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canClassifyAnyBug")),
):
    result = _found(await bugs.classify_bug(bug_id, payload.classification), bug_id)
    await edits.save_audit_log(
        "bugs", "classify", {"_id": bug_id}, update={"classification": payload.classification},
        auth=audit_identity(auth),
    )
    return result


@router.patch("/{bugId}/assign", response_model=BugPublic)
async def assign_bug(
    payload: BugAssign,
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    users: UserRepository = Depends(get_users),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canReassignAnyBug")),
):
    assignee = await users.get_user_by_id(payload.assigned_to_user_id)
    if assignee is None:
        raise NotFoundError(f"User {payload.assigned_to_user_id} not found.")
    result = _found(await bugs.assign_bug(bug_id, assignee), bug_id)
    await edits.save_audit_log(
        "bugs", "assign", {"_id": bug_id},
        update={"assignedToUserId": assignee.id, "assignedToName": assignee.full_name},
        auth=audit_identity(auth),
    )
    return result


@router.patch("/{bugId}/close", response_model=BugPublic)
async def close_bug(
    payload: BugClose,
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canCloseAnyBug")),
):
    bug = await bugs.close_bug(bug_id, payload.closed, by_user_id=auth["_id"], by_name=auth.get("name"))
    result = _found(bug, bug_id)
    await edits.save_audit_log(
        "bugs", "close" if payload.closed else "reopen", {"_id": bug_id},
        update={"closed": payload.closed}, auth=audit_identity(auth),
    )
    return result


@router.get("/{bugId}/comments", response_model=list[CommentPublic])
async def list_comments(
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    comments: CommentRepository = Depends(get_comments),
    _auth: dict = Depends(require_login),
):
    _found(await bugs.get_bug_by_id(bug_id), bug_id)
    return [CommentPublic.model_validate(c) for c in await comments.get_comments_for_bug(bug_id)]


@router.get("/{bugId}/comments/{commentId}", response_model=CommentPublic)
async def get_comment(
    bug_id: str = Depends(valid_id("bugId")),
    comment_id: str = Depends(valid_id("commentId")),
    comments: CommentRepository = Depends(get_comments),
    _auth: dict = Depends(require_login),
):
    comment = await comments.get_comment(bug_id, comment_id)
    if comment is None:
        raise NotFoundError(f"Comment {comment_id} not found.")
    return CommentPublic.model_validate(comment)


@router.post(
    "/{bugId}/comments/new", response_model=CommentPublic, status_code=status.HTTP_201_CREATED
)
async def add_comment(
    payload: CommentCreate,
    bug_id: str = Depends(valid_id("bugId")),
    bugs: BugRepository = Depends(get_bugs),
    comments: CommentRepository = Depends(get_comments),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_permission("canAddComments")),
):
    _found(await bugs.get_bug_by_id(bug_id), bug_id)
    comment = await comments.add_comment(
        bug_id, payload.text, author_id=auth["_id"], author_name=auth.get("name")
    )
    await edits.save_audit_log(
        "comments", "insert", {"_id": comment.id, "bugId": bug_id},
        update={"text": payload.text}, auth=audit_identity(auth),
    )
    return CommentPublic.model_validate(comment)
