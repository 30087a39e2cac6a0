from decimal import Decimal

import pytest

from spaardoel.plant import (
    DEFAULT_PLANT_TYPE,
    PLANT_COLORS,
    PlantStage,
    describe_plant,
    get_stage,
    leaf_count,
    normalize_plant_type,
    plant_color,
    plant_height,
    progress_percentage,
    render_plant_svg,
    stem_height,
)


@pytest.mark.parametrize(
    ("percentage", "stage"),
    [
        (0, PlantStage.SEED),
        (9.99, PlantStage.SEED),
        (10, PlantStage.SPROUT),
        (24.9, PlantStage.SPROUT),
        (25, PlantStage.SMALL),
        (49.9, PlantStage.SMALL),
        (50, PlantStage.MEDIUM),
        (75, PlantStage.LARGE),
        (94.99, PlantStage.LARGE),
        (95, PlantStage.FLOWERING),
        (99.9, PlantStage.FLOWERING),
        (100, PlantStage.FRUITING),
        (250, PlantStage.FRUITING),
    ],
)
def test_stage_boundaries(percentage, stage) -> None:
    assert get_stage(percentage) is stage


def test_stage_never_moves_backwards_as_progress_grows() -> None:
    ranks = [get_stage(step / 10).rank for step in range(0, 1501)]
    assert ranks == sorted(ranks)
    assert ranks[0] == 0
    assert ranks[-1] == len(PlantStage) - 1


def test_leaf_count_steps_every_twenty_percent() -> None:
    assert leaf_count(0) == 0
    assert leaf_count(19.99) == 0
    assert leaf_count(20) == 1
    assert leaf_count(100) == 5
    assert leaf_count(150) == 7
    counts = [leaf_count(step) for step in range(0, 301)]
    assert counts == sorted(counts)


def test_heights_have_floors_and_grow_linearly() -> None:
    for step in range(0, 201):
        assert plant_height(step) >= 5
        assert stem_height(step) >= 10
    assert plant_height(0) == 5
    assert stem_height(0) == 10
    assert plant_height(50) == pytest.approx(40)
    assert stem_height(50) == pytest.approx(24)
    assert plant_height(150) == pytest.approx(120)


def test_plant_type_selects_colour_and_falls_back_to_default() -> None:
    assert plant_color("rose") == "#ff6b9d"
    assert plant_color("tulip") == "#c44569"
    assert plant_color("daisy") == "#f8b500"
    assert plant_color(None) == PLANT_COLORS[DEFAULT_PLANT_TYPE] == "#ffd700"
    assert plant_color("cactus") == "#ffd700"
    assert normalize_plant_type(" Rose ") == "rose"
    assert normalize_plant_type("orchid") == DEFAULT_PLANT_TYPE


def test_empty_goal_is_a_seed() -> None:
    visual = describe_plant(0, None)

    assert visual.stage is PlantStage.SEED
    assert visual.leaf_count == 0
    assert visual.plant_height == 5
    assert visual.plant_type == DEFAULT_PLANT_TYPE
    assert not visual.show_petals
    assert not visual.show_sparkles


def test_flowering_plant_has_eight_petals_but_no_fruit() -> None:
    visual = describe_plant(95, "tulip")

    assert visual.stage is PlantStage.FLOWERING
    assert visual.petal_angles == (0, 45, 90, 135, 180, 225, 270, 315)
    assert not visual.show_fruit
    assert visual.show_sparkles


def test_completed_goal_bears_fruit() -> None:
    visual = describe_plant(100)

    assert visual.stage is PlantStage.FRUITING
    assert visual.show_fruit
    assert visual.show_petals
    assert visual.leaf_count == 5


def test_over_funded_goal_is_not_clamped() -> None:
    visual = describe_plant(150, "rose")

    assert visual.stage is PlantStage.FRUITING
    assert visual.color == "#ff6b9d"
    assert visual.leaf_count == 7
    assert visual.percentage == 150
    assert visual.plant_height == pytest.approx(120)


def test_degenerate_inputs_behave_like_zero_progress() -> None:
    assert describe_plant(float("nan")).stage is PlantStage.SEED
    assert describe_plant(-20).leaf_count == 0
    assert describe_plant(-20).plant_height == 5
    assert leaf_count(float("inf")) == 0
    assert get_stage("not a number") is PlantStage.SEED


def test_mapping_is_deterministic() -> None:
    assert describe_plant(42.5, "daisy") == describe_plant(42.5, "daisy")
    assert describe_plant(Decimal("42.5"), "daisy") == describe_plant(42.5, "daisy")


def test_progress_percentage_handles_missing_target() -> None:
    assert progress_percentage(Decimal("25"), Decimal("100")) == pytest.approx(25)
    assert progress_percentage(150, 100) == pytest.approx(150)
    assert progress_percentage(10, 0) == 0
    assert progress_percentage(10, -5) == 0


def test_visual_as_dict_lists_rendering_parameters() -> None:
    payload = describe_plant(60, "daisy").as_dict()

    assert payload["stage"] == "medium"
    assert payload["color"] == "#f8b500"
    assert payload["leaf_count"] == 3
    assert payload["petals"] == []
    assert payload["fruit"] is False
    assert payload["sparkles"] is True


def test_svg_for_seed_shows_only_a_seed() -> None:
    svg = render_plant_svg(describe_plant(5))

    assert svg.startswith("<svg")
    assert "data-stage='seed'" in svg
    assert "plant-seed" in svg
    assert "plant-stem" not in svg
    assert "plant-sparkle" not in svg
    assert "5%" in svg


def test_svg_for_sprout_draws_stem_and_sprout() -> None:
    svg = render_plant_svg(describe_plant(20))

    assert "plant-sprout" in svg
    assert "plant-stem" in svg
    assert svg.count("plant-leaf") == 1


def test_svg_for_fruiting_plant_draws_petals_fruit_and_sparkles() -> None:
    svg = render_plant_svg(describe_plant(100, "rose"), size="large", css_class="goal-plant")

    assert svg.count("plant-petal") == 8
    assert "plant-fruit" in svg
    assert svg.count("plant-sparkle") == 3
    assert "#ff6b9d" in svg
    assert "width='384'" in svg
    assert "goal-plant" in svg


def test_svg_keeps_over_funded_plants_on_the_canvas() -> None:
    svg = render_plant_svg(describe_plant(1000))

    assert "height='150'" in svg
    assert svg.count("plant-leaf") == 11


def test_svg_unknown_size_uses_medium() -> None:
    assert "width='256'" in render_plant_svg(describe_plant(30), size="giant")
