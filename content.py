"""
Novels and chapters.

Reads never see a novel carrying the `deleting` marker: removal is
mark -> delete chapters -> delete novel, and a failure while deleting
chapters clears the marker again so the novel is left as it was. A novel
stuck with the marker can still be deleted by its author.
"""
import math
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from loguru import logger
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from database import CHAPTERS, NOVELS, create_document, get_db, get_documents, to_object_id, utcnow
from errors import NotFoundError, ValidationError
from identity import author_summaries
from schemas import Chapter, Novel
from security import Session, ensure_owner

LIVE = {"deleting": {"$ne": True}}
CHAPTER_ORDER = [("chapter_number", ASCENDING), ("_id", ASCENDING)]
CHAPTER_SUMMARY = {"title": 1, "chapter_number": 1, "created_at": 1}
MAX_PAGE_SIZE = 100


def _clean_genres(genres: Optional[List[str]]) -> List[str]:
    seen = []
    for genre in genres or []:
        genre = (genre or "").strip()
        if genre and genre not in seen:
            seen.append(genre)
    return seen


def _require_text(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not value or not value.strip()]
    if missing:
        raise ValidationError(f"{' and '.join(missing).capitalize()} required")


def _require_chapter_number(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("Chapter number must be a positive integer")
    return value


def _with_author(novels: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    authors = author_summaries(n.get("author") for n in novels)
    for novel in novels:
        novel["author"] = authors.get(novel["author"], {"_id": novel["author"], "name": None})
    return novels


def find_novel(novel_id: Any, include_deleting: bool = False) -> Dict[str, Any]:
    oid = to_object_id(novel_id)
    filter_dict = {"_id": oid} if include_deleting else {"_id": oid, **LIVE}
    novel = get_db()[NOVELS].find_one(filter_dict) if oid else None
    if not novel:
        raise NotFoundError("Novel")
    return novel


def find_owned_novel(session: Session, novel_id: Any, include_deleting: bool = False) -> Dict[str, Any]:
    novel = find_novel(novel_id, include_deleting)
    ensure_owner(session, novel["author"])
    return novel


# Novels

def create_novel(
    session: Session,
    title: str,
    description: str,
    cover_image: Optional[str] = None,
    genres: Optional[List[str]] = None,
    require_genres: bool = False,
) -> Dict[str, Any]:
    _require_text(title=title, description=description)
    genres = _clean_genres(genres)
    if require_genres and not genres:
        raise ValidationError("At least one genre is required")

    record = Novel(
        title=title.strip(),
        description=description.strip(),
        cover_image=cover_image or None,
        author=session.user_id,
        genres=genres,
        views=0,
    )
    novel_id = create_document(NOVELS, record)
    return get_db()[NOVELS].find_one({"_id": novel_id})


def get_novel(novel_id: Any) -> Dict[str, Any]:
    """Fetch a novel for its detail page. Every call counts one view."""
    oid = to_object_id(novel_id)
    novel = None
    if oid:
        novel = get_db()[NOVELS].find_one_and_update(
            {"_id": oid, **LIVE},
            {"$inc": {"views": 1}},
            return_document=ReturnDocument.AFTER,
        )
    if not novel:
        raise NotFoundError("Novel")

    chapters = get_documents(CHAPTERS, {"novel_id": oid}, sort=CHAPTER_ORDER, projection=CHAPTER_SUMMARY)
    return {"novel": _with_author([novel])[0], "chapters": chapters}


def update_novel(
    session: Session,
    novel_id: Any,
    title: str,
    description: str,
    cover_image: Optional[str] = None,
    genres: Optional[List[str]] = None,
    require_genres: bool = False,
) -> Dict[str, Any]:
    novel = find_owned_novel(session, novel_id)
    _require_text(title=title, description=description)

    changes = {"title": title.strip(), "description": description.strip(), "updated_at": utcnow()}
    if cover_image is not None:
        changes["cover_image"] = cover_image or None
    if genres is not None:
        changes["genres"] = _clean_genres(genres)
        if require_genres and not changes["genres"]:
            raise ValidationError("At least one genre is required")

    return get_db()[NOVELS].find_one_and_update(
        {"_id": novel["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_novel(session: Session, novel_id: Any) -> int:
    """Delete a novel and all its chapters; returns the number of chapters removed.

    A novel left marked by an interrupted delete is still found here, so a
    retry by its author finishes the job.
    """
    novel = find_owned_novel(session, novel_id, include_deleting=True)
    db = get_db()

    db[NOVELS].update_one({"_id": novel["_id"]}, {"$set": {"deleting": True}})
    try:
        removed = db[CHAPTERS].delete_many({"novel_id": novel["_id"]}).deleted_count
    except Exception:
        db[NOVELS].update_one({"_id": novel["_id"]}, {"$unset": {"deleting": ""}})
        logger.exception(f"Chapter cleanup failed for novel {novel['_id']}, novel kept")
        raise
    db[NOVELS].delete_one({"_id": novel["_id"]})

    logger.info(f"Deleted novel {novel['_id']} with {removed} chapters")
    return removed


def list_novels(
    author_id: Optional[str] = None,
    genre: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

    filter_dict: Dict[str, Any] = dict(LIVE)
    if author_id:
        author = to_object_id(author_id)
        if author is None:
            raise ValidationError("Invalid author id")
        filter_dict["author"] = author
    if genre:
        filter_dict["genres"] = genre
    if q:
        filter_dict["title"] = {"$regex": re.escape(q), "$options": "i"}

    total = get_db()[NOVELS].count_documents(filter_dict)
    novels = get_documents(
        NOVELS,
        filter_dict,
        limit=limit,
        sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
        skip=(page - 1) * limit,
    )
    return {
        "novels": _with_author(novels),
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit),
        },
    }


# Chapters

def create_chapter(
    session: Session,
    novel_id: Any,
    title: str,
    content: str,
    chapter_number: int,
    images: Optional[List[str]] = None,
) -> Dict[str, Any]:
    novel = find_owned_novel(session, novel_id)
    _require_text(title=title, content=content)
    record = Chapter(
        title=title.strip(),
        content=content,
        novel_id=novel["_id"],
        chapter_number=_require_chapter_number(chapter_number),
        images=[url for url in images or [] if url],
    )
    chapter_id = create_document(CHAPTERS, record)
    return get_db()[CHAPTERS].find_one({"_id": chapter_id})


def list_chapters(novel_id: Any) -> List[Dict[str, Any]]:
    novel = find_novel(novel_id)
    return get_documents(CHAPTERS, {"novel_id": novel["_id"]}, sort=CHAPTER_ORDER)


def _find_chapter(novel: Dict[str, Any], chapter_id: Any) -> Dict[str, Any]:
    oid = to_object_id(chapter_id)
    chapter = get_db()[CHAPTERS].find_one({"_id": oid, "novel_id": novel["_id"]}) if oid else None
    if not chapter:
        raise NotFoundError("Chapter")
    return chapter


def chapter_navigation(novel_id: ObjectId, chapter_id: ObjectId) -> Dict[str, Optional[Dict[str, Any]]]:
    """Neighbours of a chapter in reading order, whatever the numbering gaps."""
    ordered = get_documents(CHAPTERS, {"novel_id": novel_id}, sort=CHAPTER_ORDER, projection=CHAPTER_SUMMARY)
    ids = [c["_id"] for c in ordered]
    if chapter_id not in ids:
        return {"previous": None, "next": None}
    position = ids.index(chapter_id)
    return {
        "previous": ordered[position - 1] if position > 0 else None,
        "next": ordered[position + 1] if position + 1 < len(ordered) else None,
    }


def get_chapter(novel_id: Any, chapter_id: Any) -> Dict[str, Any]:
    novel = find_novel(novel_id)
    chapter = _find_chapter(novel, chapter_id)
    return {"chapter": chapter, "navigation": chapter_navigation(novel["_id"], chapter["_id"])}


def update_chapter(
    session: Session,
    novel_id: Any,
    chapter_id: Any,
    title: str,
    content: str,
    chapter_number: int,
    keep_images: Optional[List[str]] = None,
    new_images: Optional[List[str]] = None,
) -> Dict[str, Any]:
    novel = find_owned_novel(session, novel_id)
    chapter = _find_chapter(novel, chapter_id)
    _require_text(title=title, content=content)
    chapter_number = _require_chapter_number(chapter_number)

    keep_images = [url for url in keep_images or [] if url]
    stored = set(chapter.get("images", []))
    unknown = [url for url in keep_images if url not in stored]
    if unknown:
        raise ValidationError(f"Cannot keep images the chapter does not have: {', '.join(unknown)}")

    changes = {
        "title": title.strip(),
        "content": content,
        "chapter_number": chapter_number,
        "images": keep_images + [url for url in new_images or [] if url],
        "updated_at": utcnow(),
    }
    return get_db()[CHAPTERS].find_one_and_update(
        {"_id": chapter["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_chapter(session: Session, novel_id: Any, chapter_id: Any) -> None:
    novel = find_owned_novel(session, novel_id)
    chapter = _find_chapter(novel, chapter_id)
    get_db()[CHAPTERS].delete_one({"_id": chapter["_id"]})
