from fastapi import APIRouter, Depends

from foundit.dependencies import get_image_storage, get_store
from foundit.models.post import POSTS_COLLECTION, Post
from foundit.services.documents import DESCENDING, Query
from foundit.utils.auth_helper import get_session_required
from foundit.viewmodels.session import SessionProvider
from foundit.viewmodels.transform import StatusFilter, filter_by_status, status_counts


router = APIRouter()


@router.get("/me")
def get_my_profile(session: SessionProvider = Depends(get_session_required)):
    user = session.current_user
    return {
        "uid": user.uid,
        "email": user.email,
        "display_name": user.author_name(),
        "photo_url": user.photo_url,
    }


@router.get("/posts")
def get_my_posts(
    status: StatusFilter = StatusFilter.all,
    session: SessionProvider = Depends(get_session_required),
):
    # the owner's listing always includes resolved posts
    docs = get_store().get_documents(
        Query(POSTS_COLLECTION)
        .where("userId", "==", session.uid)
        .order("createdAt", DESCENDING)
    )
    posts = [Post.from_document(doc) for doc in docs]
    images = get_image_storage()

    return {
        "posts": [p.to_public(images=images) for p in filter_by_status(posts, status)],
        "counts": status_counts(posts),
    }
