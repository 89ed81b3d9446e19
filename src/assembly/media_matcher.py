"""Keyword-overlap matching of media assets to scenes."""

import logging
import re
from pathlib import PurePosixPath

from models.project import MediaAsset, Scene

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def asset_terms(asset: MediaAsset) -> list[str]:
    """Lowercased tags plus filename tokens of an asset."""
    terms = [t.lower() for t in asset.tags if t]
    stem = PurePosixPath(asset.key).stem.lower() if asset.key else ""
    terms.extend(tok for tok in _TOKEN_SPLIT.split(stem) if tok)
    return terms


def scene_keywords(scene) -> list[str]:
    """Keywords of a context Scene or a manifest scene."""
    requirements = getattr(scene, "visual_requirements", None)
    if requirements is not None:
        return list(requirements.keywords)
    return list(getattr(scene, "keywords", None) or [])


def score(scene: Scene, asset: MediaAsset) -> int:
    """Number of scene keywords found in the asset's tags or filename tokens.

    Substring match, case-insensitive, at most one point per keyword.
    """
    terms = asset_terms(asset)
    points = 0
    for keyword in scene_keywords(scene):
        kw = keyword.lower().strip()
        if kw and any(kw in term for term in terms):
            points += 1
    return points


def rank(scene: Scene, candidates: list[MediaAsset]) -> list[MediaAsset]:
    """All candidates, best match first.

    Order: score desc, relevance desc, then original position. Stable and
    deterministic for identical input.
    """
    keyed = [
        (-score(scene, asset), -asset.relevance_score, position, asset)
        for position, asset in enumerate(candidates)
    ]
    keyed.sort(key=lambda k: k[:3])
    return [k[3] for k in keyed]


def match(scene: Scene, candidates: list[MediaAsset]) -> MediaAsset | None:
    """Best asset for a scene, or None if there are no candidates.

    When nothing scores above zero the first candidate for this scene number
    is used (first candidate overall if none carries the scene number).
    """
    if not candidates:
        return None

    scored = [(score(scene, asset), asset) for asset in candidates]
    if max(points for points, _ in scored) == 0:
        for asset in candidates:
            if asset.scene_number == scene.scene_number:
                return asset
        return candidates[0]

    return rank(scene, candidates)[0]
