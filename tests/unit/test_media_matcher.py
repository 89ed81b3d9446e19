"""Unit tests for keyword matching of media assets to scenes."""

import pytest

from assembly.media_matcher import asset_terms, match, rank, scene_keywords, score
from models.manifest import ManifestScene
from models.project import MediaAsset, Scene, VisualRequirements


def _scene(keywords, number=1) -> Scene:
    return Scene(scene_number=number, visual_requirements=VisualRequirements(keywords=keywords))


def _asset(key="", tags=None, scene=1, relevance=0.0) -> MediaAsset:
    return MediaAsset(key=key, scene_number=scene, tags=tags or [], relevance_score=relevance)


class TestScore:
    """Tests for keyword scoring."""

    def test_counts_each_keyword_once(self):
        scene = _scene(["beach", "sunset"])
        asset = _asset(tags=["beach", "beach day", "sunset"])

        assert score(scene, asset) == 2

    def test_filename_tokens_count_as_terms(self):
        scene = _scene(["coral"])
        asset = _asset(key="videos/p/03-media/scene-2/images/Coral-Reef_01.jpg")

        assert "coral" in asset_terms(asset)
        assert score(scene, asset) == 1

    def test_case_insensitive_substring(self):
        scene = _scene(["Sun"])
        asset = _asset(tags=["SUNSET"])

        assert score(scene, asset) == 1

    def test_blank_keywords_ignored(self):
        scene = _scene(["", "  "])
        assert score(scene, _asset(tags=["anything"])) == 0


class TestMatch:
    """Tests for best-asset selection."""

    def test_beach_sunset_prefers_two_matches(self):
        scene = _scene(["beach", "sunset"])
        first = _asset(key="a.jpg", tags=["beach", "city"])
        second = _asset(key="b.jpg", tags=["sunset", "beach"])

        assert match(scene, [first, second]) is second

    def test_no_candidates_returns_none(self):
        assert match(_scene(["beach"]), []) is None

    def test_zero_scores_fall_back_to_scene_number(self):
        scene = _scene(["volcano"], number=2)
        other = _asset(key="x.jpg", tags=["beach"], scene=1)
        own = _asset(key="y.jpg", tags=["city"], scene=2)

        assert match(scene, [other, own]) is own

    def test_zero_scores_without_scene_number_returns_first(self):
        scene = _scene(["volcano"], number=5)
        first = _asset(key="x.jpg", scene=1)
        second = _asset(key="y.jpg", scene=2)

        assert match(scene, [first, second]) is first


class TestRank:
    """Tests for candidate ordering."""

    def test_orders_by_score_then_relevance_then_position(self):
        scene = _scene(["beach", "sunset"])
        low = _asset(key="low.jpg", tags=["beach"], relevance=0.2)
        high = _asset(key="high.jpg", tags=["beach"], relevance=0.9)
        best = _asset(key="best.jpg", tags=["beach", "sunset"], relevance=0.1)
        none = _asset(key="none.jpg", tags=["city"])

        assert rank(scene, [none, low, high, best]) == [best, high, low, none]

    def test_deterministic_for_ties(self):
        scene = _scene(["beach"])
        candidates = [_asset(key=f"{i}.jpg", tags=["beach"]) for i in range(4)]

        assert rank(scene, candidates) == candidates
        assert rank(scene, candidates) == rank(scene, list(candidates))

    def test_works_with_manifest_scene(self):
        scene = ManifestScene(
            scene_number=1, title="", purpose="hook", start_time=0.0, end_time=5.0,
            duration=5.0, script="", keywords=["reef"], media=[],
        )
        a = _asset(key="a.jpg", tags=["city"])
        b = _asset(key="b.jpg", tags=["reef"])

        assert scene_keywords(scene) == ["reef"]
        assert rank(scene, [a, b])[0] is b


@pytest.mark.parametrize("keywords,expected", [(["beach"], 1), ([], 0)])
def test_scene_keywords_from_requirements(keywords, expected):
    scene = _scene(keywords)
    assert len(scene_keywords(scene)) == expected
