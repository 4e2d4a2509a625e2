"""
Tests for the composition engine.

Renders synthetic bases and photos and checks pixels of the flattened
output: geometry, fit modes, z-order, rotation and failure handling.
"""

import os

import pytest
from PIL import Image

from giftprint.composite import CompositionEngine, CompositionResult, create_composition_engine
from giftprint.errors import BaseImageDecodeError, BaseImageNotFound, InvalidSlotGeometry
from giftprint.layout import Layout
from giftprint.render import SlotAssignment
from tests.helpers import BLUE, GREEN, RED, YELLOW, as_array, is_color, make_image, png_bytes


LEFT_HALF = {'id': 'left', 'x': 0, 'y': 0, 'width': 50, 'height': 100}
FULL = {'id': 'full', 'x': 0, 'y': 0, 'width': 100, 'height': 100}


@pytest.fixture
def engine(test_config):
    return CompositionEngine(test_config)


class TestCanvas:

    def test_output_matches_target_size(self, engine, base_image, red_photo):
        result = engine.compose(base_image, 123, 77, [LEFT_HALF], {'left': red_photo})

        assert isinstance(result, CompositionResult)
        assert result.size == (123, 77)
        assert result.to_image().size == (123, 77)
        assert result.buffer.startswith(b'\x89PNG')

    def test_no_slots_is_base_only(self, engine, base_image):
        result = engine.compose(base_image, 400, 300, [])
        pixels = as_array(result)

        assert is_color(pixels[0, 0], BLUE)
        assert is_color(pixels[299, 399], BLUE)
        assert result.skipped_slots == []

    def test_base_is_center_cropped_to_aspect(self, engine, split_base_image):
        # 400x200 base into a square keeps the middle 200x200
        result = engine.compose(split_base_image, 100, 100, [])
        pixels = as_array(result)

        assert is_color(pixels[50, 10], RED, tolerance=10)
        assert is_color(pixels[50, 90], BLUE, tolerance=10)

    def test_output_is_deterministic(self, engine, base_image, red_photo, green_photo):
        slots = [LEFT_HALF, {'id': 'right', 'x': 50, 'y': 0, 'width': 50, 'height': 100, 'rotation': 12}]
        assignments = {'left': red_photo, 'right': green_photo}

        first = engine.compose(base_image, 400, 300, slots, assignments)
        second = engine.compose(base_image, 400, 300, slots, assignments)

        assert first.buffer == second.buffer

    def test_transparent_base_keeps_alpha(self, engine, tmp_path):
        base = make_image(tmp_path / 'clear.png', (50, 50), (0, 0, 0, 0), mode='RGBA')

        result = engine.compose(base, 50, 50, [])
        assert as_array(result)[25, 25][3] == 0

    @pytest.mark.parametrize("width,height", [(0, 10), (10, -1), (10.5, 10), (True, 10), ('10', 10)])
    def test_bad_target_size(self, engine, base_image, width, height):
        with pytest.raises(ValueError):
            engine.compose(base_image, width, height, [])

    def test_raw_slots_are_validated(self, engine, base_image):
        with pytest.raises(InvalidSlotGeometry):
            engine.compose(base_image, 100, 100, [dict(LEFT_HALF, x=120)])

    def test_non_finite_rotation_rejected_before_render(self, engine, base_image, red_photo):
        with pytest.raises(InvalidSlotGeometry):
            engine.compose(base_image, 100, 100, [dict(LEFT_HALF, rotation=float('nan'))], {'left': red_photo})


class TestFitModes:

    def test_cover_fills_slot(self, engine, base_image, red_photo):
        result = engine.compose(base_image, 400, 300, [LEFT_HALF], {'left': red_photo})
        pixels = as_array(result)

        for y, x in [(0, 0), (0, 198), (150, 100), (299, 0), (299, 198)]:
            assert is_color(pixels[y, x], RED), (x, y)
        assert is_color(pixels[150, 300], BLUE)

    def test_contain_shows_whole_photo(self, engine, base_image, marked_photo):
        # 200x100 photo into a 200x300 slot keeps both edge bands
        slot = dict(LEFT_HALF, fit='contain')
        result = engine.compose(base_image, 400, 300, [slot], {'left': marked_photo})
        pixels = as_array(result)

        assert is_color(pixels[150, 5], GREEN, tolerance=10)
        assert is_color(pixels[150, 194], YELLOW, tolerance=10)
        assert is_color(pixels[150, 100], RED, tolerance=10)
        # Letterbox lets the base show through
        assert is_color(pixels[10, 100], BLUE)
        assert is_color(pixels[290, 100], BLUE)

    def test_cover_crops_photo_edges(self, engine, base_image, marked_photo):
        # 200x100 photo covering a 100x300 slot loses the edge bands
        slot = {'id': 'narrow', 'x': 0, 'y': 0, 'width': 25, 'height': 100}
        result = engine.compose(base_image, 400, 300, [slot], {'narrow': marked_photo})
        pixels = as_array(result)

        assert is_color(pixels[150, 2], RED, tolerance=10)
        assert is_color(pixels[150, 97], RED, tolerance=10)


class TestAssignments:

    def test_unassigned_slot_shows_base(self, engine, base_image):
        result = engine.compose(base_image, 400, 300, [LEFT_HALF], {})
        pixels = as_array(result)

        assert is_color(pixels[150, 100], BLUE)
        assert result.skipped_slots == []

    def test_unknown_slot_ids_ignored(self, engine, base_image, red_photo):
        result = engine.compose(base_image, 400, 300, [LEFT_HALF], {'nope': red_photo})
        assert is_color(as_array(result)[150, 100], BLUE)

    def test_missing_source_is_skipped(self, engine, base_image, red_photo, tmp_path):
        slots = [LEFT_HALF, {'id': 'right', 'x': 50, 'y': 0, 'width': 50, 'height': 100}]
        result = engine.compose(base_image, 400, 300, slots,
                                {'left': str(tmp_path / 'gone.png'), 'right': red_photo})
        pixels = as_array(result)

        assert result.skipped_slots == ['left']
        assert is_color(pixels[150, 100], BLUE)
        assert is_color(pixels[150, 300], RED)

    @pytest.mark.parametrize("source", [b'', b'not an image', png_bytes((50, 50))[:60]])
    def test_bad_buffers_are_skipped(self, engine, base_image, source):
        result = engine.compose(base_image, 400, 300, [LEFT_HALF], {'left': source})

        assert result.skipped_slots == ['left']
        assert is_color(as_array(result)[150, 100], BLUE)

    def test_bytes_and_path_render_identically(self, engine, base_image, red_photo):
        from_path = engine.compose(base_image, 200, 150, [LEFT_HALF], {'left': red_photo})
        from_bytes = engine.compose(base_image, 200, 150, [LEFT_HALF], {'left': red_photo.read_bytes()})

        assert from_path.buffer == from_bytes.buffer

    def test_assignment_objects(self, engine, base_image, red_photo):
        result = engine.compose(base_image, 400, 300, [LEFT_HALF], [SlotAssignment('left', red_photo)])
        assert is_color(as_array(result)[150, 100], RED)

    def test_collapsed_slot_is_skipped(self, engine, base_image, red_photo):
        tiny = {'id': 'tiny', 'x': 10, 'y': 10, 'width': 0.1, 'height': 0.1}
        result = engine.compose(base_image, 100, 100, [tiny], {'tiny': red_photo})

        assert result.skipped_slots == ['tiny']


class TestBaseFailures:

    def test_missing_base(self, engine, tmp_path):
        with pytest.raises(BaseImageNotFound):
            engine.compose(tmp_path / 'missing.png', 10, 10, [])

    def test_undecodable_base(self, engine, tmp_path):
        path = tmp_path / 'broken.png'
        path.write_bytes(b'\x89PNG\r\n\x1a\n' + b'\x00' * 32)

        with pytest.raises(BaseImageDecodeError):
            engine.compose(path, 10, 10, [])

    def test_workspace_removed_after_failure(self, engine, test_config, tmp_path):
        with pytest.raises(BaseImageNotFound):
            engine.compose(tmp_path / 'missing.png', 10, 10, [])

        assert os.listdir(test_config.TEMP_FOLDER) == []

    def test_workspace_removed_after_success(self, engine, test_config, base_image, red_photo):
        engine.compose(base_image, 40, 30, [LEFT_HALF], {'left': red_photo.read_bytes()})
        assert os.listdir(test_config.TEMP_FOLDER) == []


class TestLayering:

    def test_higher_z_index_paints_on_top(self, engine, base_image, red_photo, green_photo):
        slots = [dict(FULL, id='top', zIndex=2), dict(FULL, id='bottom', zIndex=1)]
        result = engine.compose(base_image, 100, 100, slots, {'top': green_photo, 'bottom': red_photo})

        assert is_color(as_array(result)[50, 50], GREEN)

    def test_ties_paint_in_declaration_order(self, engine, base_image, red_photo, green_photo):
        slots = [dict(FULL, id='first'), dict(FULL, id='second')]
        result = engine.compose(base_image, 100, 100, slots, {'first': green_photo, 'second': red_photo})

        assert is_color(as_array(result)[50, 50], RED)

    def test_overflowing_slot_is_clipped(self, engine, base_image, red_photo):
        slot = {'id': 'edge', 'x': 80, 'y': 80, 'width': 50, 'height': 50}
        result = engine.compose(base_image, 100, 100, [slot], {'edge': red_photo})
        pixels = as_array(result)

        assert result.size == (100, 100)
        assert is_color(pixels[99, 99], RED)
        assert is_color(pixels[10, 10], BLUE)


class TestRotation:

    @pytest.mark.parametrize("rotation", [0, 360, -360])
    def test_full_turns_match_unrotated(self, engine, base_image, marked_photo, rotation):
        plain = engine.compose(base_image, 200, 150, [LEFT_HALF], {'left': marked_photo})
        turned = engine.compose(base_image, 200, 150, [dict(LEFT_HALF, rotation=rotation)],
                                {'left': marked_photo})

        assert plain.buffer == turned.buffer

    def test_quarter_turn_swaps_visible_extent(self, engine, base_image, red_photo):
        # 200x300 region turned 90 degrees shows a 300x200 band clipped to the box
        result = engine.compose(base_image, 400, 300, [dict(LEFT_HALF, rotation=90)], {'left': red_photo})
        pixels = as_array(result)

        assert is_color(pixels[150, 5], RED)
        assert is_color(pixels[150, 194], RED)
        assert is_color(pixels[20, 100], BLUE)
        assert is_color(pixels[280, 100], BLUE)

    def test_rotation_exposes_base_in_corners(self, engine, base_image, red_photo):
        slot = {'id': 'tilted', 'x': 25, 'y': 0, 'width': 50, 'height': 100, 'rotation': 30}
        result = engine.compose(base_image, 400, 300, [slot], {'tilted': red_photo})
        pixels = as_array(result)

        # Slot spans x 100-299; its corners are now transparent
        assert is_color(pixels[1, 101], BLUE)
        assert is_color(pixels[150, 200], RED)
        assert is_color(pixels[150, 50], BLUE)


class TestResolutionIndependence:

    def test_slot_scales_with_canvas(self, engine, base_image, red_photo):
        slot = {'id': 'quarter', 'x': 25, 'y': 25, 'width': 50, 'height': 50}

        for width, height in [(400, 300), (200, 150), (97, 73)]:
            pixels = as_array(engine.compose(base_image, width, height, [slot], {'quarter': red_photo}))
            assert is_color(pixels[height // 2, width // 2], RED)
            assert is_color(pixels[2, 2], BLUE)
            assert is_color(pixels[height - 3, width - 3], BLUE)


class TestResult:

    def test_save_and_data_url(self, engine, base_image, tmp_path):
        result = engine.compose(base_image, 20, 10, [])

        saved = result.save(tmp_path / 'out' / 'final.png')
        assert saved.read_bytes() == result.buffer
        assert result.to_data_url().startswith('data:image/png;base64,')

        with Image.open(saved) as image:
            assert image.size == (20, 10)

    def test_compose_layout_uses_native_size(self, test_config, base_image, red_photo):
        layout = Layout(id='mug', base_image=str(base_image), width=400, height=300, slots=[LEFT_HALF])
        engine = create_composition_engine(test_config)

        assert engine.compose_layout(layout, {'left': red_photo}).size == (400, 300)
        assert engine.compose_layout(layout, {'left': red_photo}, (40, 30)).size == (40, 30)
