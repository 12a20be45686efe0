import io

import numpy as np
import pytest
from PIL import Image

from image_pdf import compression
from image_pdf.compression import (
    ItemFailure,
    OptimizedImage,
    encode_jpeg,
    encode_with_size_ceiling,
    flatten_alpha,
    is_grayscale_image,
    load_image,
    optimize_image,
)
from image_pdf.config import ConversionConfig, MODE_TARGET_SIZE
from image_pdf.strategy import CompressionStrategy

from conftest import noise, solid, write_image


def decode(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class TestFlattenAlpha:

    def test_transparent_becomes_white(self):
        image = solid(4, 4, (12, 200, 99, 0))
        assert (flatten_alpha(image) == 255).all()

    def test_opaque_is_unchanged(self):
        image = noise(16, 16, channels=4)
        image[:, :, 3] = 255
        flat = flatten_alpha(image)
        assert flat.shape == (16, 16, 3)
        assert (flat == image[:, :, :3]).all()

    def test_partial_alpha_blends_toward_white(self):
        image = solid(1, 1, (0, 0, 0, 128))
        # 255 * (1 - 128/255) = 127
        assert flatten_alpha(image)[0, 0].tolist() == [127, 127, 127]

    def test_rgb_passes_through(self):
        image = noise(8, 8)
        assert flatten_alpha(image) is image


def gray_with_red_block(width, height, block=(60, 40)):
    gray = noise(width, height, channels=1, seed=4)
    image = np.repeat(gray, 3, axis=2)
    image[:block[1], :block[0]] = (255, 0, 0)
    return image


def test_grayscale_detection():
    assert is_grayscale_image(solid(32, 32, (90, 90, 90)))
    assert not is_grayscale_image(solid(32, 32, (255, 0, 0)))
    assert is_grayscale_image(np.zeros((8, 8), dtype=np.uint8))


def test_small_colored_region_is_not_grayscale():
    assert not is_grayscale_image(gray_with_red_block(800, 640, block=(48, 32)))


class TestEncodeJpeg:

    def test_produces_jpeg(self):
        data = encode_jpeg(noise(64, 64), 80)
        assert data[:2] == b"\xff\xd8"
        img = decode(data)
        assert img.format == "JPEG"
        assert img.size == (64, 64)

    def test_gray_images_keep_three_channels_by_default(self):
        gray = solid(32, 32, (128, 128, 128))
        assert decode(encode_jpeg(gray, 80)).mode == "RGB"
        assert decode(encode_jpeg(gray, 80, grayscale_detection=True)).mode == "L"

    def test_alpha_is_flattened_onto_white(self):
        image = solid(32, 32, (255, 0, 0, 0))
        img = decode(encode_jpeg(image, 90, grayscale_detection=False))
        assert img.mode == "RGB"
        assert min(img.getpixel((16, 16))) >= 250

    def test_lower_quality_is_smaller(self):
        image = noise(128, 128)
        assert len(encode_jpeg(image, 50)) < len(encode_jpeg(image, 95))


class TestSizeCeilingSearch:

    @pytest.fixture
    def qualities(self, monkeypatch):
        tried = []

        def fake_encode(image, quality, grayscale_detection=False):
            tried.append(quality)
            return b"x" * 1000

        monkeypatch.setattr(compression, "encode_jpeg", fake_encode)
        return tried

    def test_accepts_first_attempt_under_ceiling(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 90, size_ceiling=5000)
        assert qualities == [90]
        assert result.attempts == 1
        assert result.quality == 90

    def test_steps_down_to_floor(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 90, size_ceiling=1)
        assert qualities == [90, 75, 60, 50]
        assert result.attempts == 4
        assert result.quality == 50

    def test_never_more_than_four_attempts(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 95, size_ceiling=1)
        assert qualities == [95, 80, 65, 50]
        assert result.attempts == 4

    def test_stops_at_floor_quality(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 60, size_ceiling=1)
        assert qualities == [60, 50]
        assert result.attempts == 2

    def test_never_below_floor(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 30, size_ceiling=1)
        assert qualities == [50]
        assert result.quality == 50

    def test_attempt_limit_keeps_last_output(self, qualities):
        result = encode_with_size_ceiling(noise(8, 8), 90, size_ceiling=1, max_attempts=2)
        assert qualities == [90, 75]
        assert result.quality == 75
        assert result.size == 1000

    def test_real_encode_missed_ceiling_is_not_an_error(self):
        result = encode_with_size_ceiling(noise(200, 200), 90, size_ceiling=10)
        assert result.size > 10
        assert result.quality == 50
        assert result.data[:2] == b"\xff\xd8"


class TestLoadImage:

    def test_rgb(self, small_png):
        source = load_image(small_png)
        assert source.pixels.shape == (48, 64, 3)
        assert source.extension == ".png"
        assert source.byte_size == small_png.stat().st_size
        assert not source.has_alpha

    def test_rgba_keeps_alpha(self, tmp_path):
        path = write_image(tmp_path / "a.PNG", noise(10, 10, channels=4))
        source = load_image(path)
        assert source.has_alpha
        assert source.extension == ".png"

    def test_palette_transparency(self, tmp_path):
        img = Image.new("P", (10, 10), 0)
        path = tmp_path / "p.gif"
        img.save(path, transparency=0)
        assert load_image(path).has_alpha

    def test_grayscale_becomes_rgb(self, tmp_path):
        path = write_image(tmp_path / "g.png", np.full((5, 6), 77, dtype=np.uint8))
        assert load_image(path).pixels.shape == (5, 6, 3)

    def test_16bit_grayscale_is_scaled_not_clipped(self, tmp_path):
        ramp = np.linspace(0, 65535, 64 * 64).astype(np.uint16).reshape(64, 64)
        path = tmp_path / "deep.png"
        Image.fromarray(ramp).save(path)

        pixels = load_image(path).pixels
        assert pixels.shape == (64, 64, 3)
        assert (pixels[:, :, 0] == (ramp >> 8)).all()
        assert pixels.min() == 0
        assert pixels.max() == 255
        assert 120 < pixels.mean() < 135


class TestOptimizeImage:

    def test_small_file_is_copied(self, small_png, scratch_dir):
        result = optimize_image(small_png, 3, scratch_dir, ConversionConfig())

        assert isinstance(result, OptimizedImage)
        assert result.strategy is CompressionStrategy.KEEP_ORIGINAL
        assert result.output_path == scratch_dir / "00003_small.png"
        assert result.output_path.read_bytes() == small_png.read_bytes()
        assert result.quality is None
        assert (result.width, result.height) == (64, 48)

    def test_kept_original_keeps_its_size(self, tmp_path, scratch_dir):
        path = write_image(tmp_path / "wide.png", solid(2000, 100, (0, 0, 255)))
        result = optimize_image(path, 0, scratch_dir, ConversionConfig())

        assert result.strategy is CompressionStrategy.KEEP_ORIGINAL
        assert (result.width, result.height) == (2000, 100)

    def test_large_file_is_reencoded(self, large_bmp, scratch_dir):
        result = optimize_image(large_bmp, 0, scratch_dir, ConversionConfig())

        assert result.strategy is CompressionStrategy.OPTIMIZE_JPEG
        assert result.output_path.suffix == ".jpg"
        assert (result.width, result.height) == (800, 480)
        assert 50 <= result.quality <= 75
        assert result.byte_size == result.output_path.stat().st_size
        assert result.byte_size < result.original_size
        with Image.open(result.output_path) as img:
            assert img.format == "JPEG"
            assert img.size == (800, 480)

    def test_photo_png_is_flattened(self, photo_png, scratch_dir):
        result = optimize_image(photo_png, 1, scratch_dir, ConversionConfig())

        assert result.strategy is CompressionStrategy.CONVERT_AND_FLATTEN
        assert result.output_path.name == "00001_photo.jpg"
        assert 50 <= result.quality <= 88
        with Image.open(result.output_path) as img:
            assert img.mode == "RGB"
            assert img.size == (800, 640)

    def test_target_size_mode_reencodes_everything(self, small_png, scratch_dir):
        config = ConversionConfig(mode=MODE_TARGET_SIZE)
        result = optimize_image(small_png, 0, scratch_dir, config)

        assert result.strategy is CompressionStrategy.OPTIMIZE_JPEG
        assert result.quality == 90
        assert result.attempts == 1
        assert result.output_path.suffix == ".jpg"

    def test_target_size_mode_flattens_alpha(self, tmp_path, scratch_dir):
        path = write_image(tmp_path / "t.png", solid(20, 20, (0, 0, 0, 0)))
        config = ConversionConfig(mode=MODE_TARGET_SIZE)
        result = optimize_image(path, 0, scratch_dir, config)

        assert result.strategy is CompressionStrategy.CONVERT_AND_FLATTEN

    def test_broken_file_is_a_failure_not_an_exception(self, broken_png, scratch_dir):
        result = optimize_image(broken_png, 0, scratch_dir, ConversionConfig())

        assert isinstance(result, ItemFailure)
        assert result.source_path == broken_png
        assert result.error
        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.parametrize("grayscale_detection", [False, True])
    def test_small_colored_region_survives(self, tmp_path, scratch_dir, grayscale_detection):
        path = write_image(tmp_path / "scan.png", gray_with_red_block(1000, 800))
        config = ConversionConfig(grayscale_detection=grayscale_detection)
        result = optimize_image(path, 0, scratch_dir, config)

        assert result.strategy is CompressionStrategy.CONVERT_AND_FLATTEN
        with Image.open(result.output_path) as img:
            assert img.mode == "RGB"
            red, green, blue = img.getpixel((10, 10))
            assert red > 200 and green < 80 and blue < 80
