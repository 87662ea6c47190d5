from typing import Optional

from src.core.models import Rect, ScanCandidate, CaptureOrigin


def target_rect(frame_width: float, size: float = 250, top_offset: float = 100, inset_top: float = 0) -> Rect:
    """
    Returns the on-screen target square in frame coordinates.
    The square is centred horizontally and sits `top_offset + inset_top` below the top edge.
    """
    return Rect(x=(frame_width - size) / 2, y=top_offset + inset_top, width=size, height=size)


def contains_point(rect: Rect, x: float, y: float) -> bool:
    return rect.x <= x <= rect.right and rect.y <= y <= rect.bottom


def accepts(candidate: ScanCandidate, target: Optional[Rect]) -> bool:
    """
    Geometry gate for scan candidates.

    Manual and bulk candidates always pass. Camera candidates pass only when the
    origin (top-left) of their bounding region lies inside the target square.
    A camera candidate without a region, or a missing target, is rejected.
    """
    if candidate.origin != CaptureOrigin.CAMERA:
        return True
    if candidate.bounds is None or target is None:
        return False
    return contains_point(target, candidate.bounds.x, candidate.bounds.y)
