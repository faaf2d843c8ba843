import unittest

import numpy as np

from tests._test_path import SRC  # noqa: F401
from tests._synthetic import blank, portrait

from photocheck.analysis import quality as q
from photocheck.validation.checks import check_lighting, lighting_issue
from photocheck.core.models import ComplianceThresholds


def _noise_image(seed=1):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(600, 600, 3), dtype=np.uint8)


def _striped_centre():
    rgb = blank(color=(128, 128, 128))
    stripes = (np.arange(600) // 4) % 2 == 0
    rgb[150:450, stripes] = 0
    rgb[150:450, ~stripes] = 255
    return rgb


class TestLighting(unittest.TestCase):
    def test_even_face_passes(self):
        reading = q.analyze_lighting(portrait())
        self.assertTrue(reading.passed)
        self.assertEqual(reading.score, 1.0)
        self.assertAlmostEqual(reading.mean, 183.9, places=3)

    def test_dark_and_bright(self):
        dark = q.analyze_lighting(blank(color=(30, 30, 30)))
        self.assertTrue(dark.too_dark)
        self.assertAlmostEqual(dark.score, 0.6)
        bright = q.analyze_lighting(blank(color=(240, 240, 240)))
        self.assertTrue(bright.too_bright)
        self.assertFalse(bright.too_dark)

    def test_side_light_is_uneven(self):
        rgb = blank(color=(60, 60, 60))
        rgb[:, 300:] = 200
        reading = q.analyze_lighting(rgb)
        self.assertFalse(reading.too_dark)
        self.assertTrue(reading.uneven)
        self.assertGreater(reading.right_mean - reading.left_mean, 100)

    def test_empty_image_is_neutral(self):
        reading = q.analyze_lighting(np.zeros((0, 0, 3), dtype=np.uint8))
        self.assertTrue(reading.passed)
        self.assertEqual(reading.score, 1.0)

    def test_narrow_images_are_measured_whole(self):
        white = q.analyze_lighting(blank(3, 3))
        self.assertFalse(white.too_dark)
        self.assertTrue(white.too_bright)

        strip = q.analyze_lighting(blank(1, 600, color=(150, 150, 150)))
        self.assertTrue(strip.passed)
        self.assertAlmostEqual(strip.mean, 150.0, places=6)

    def test_white_strip_is_not_reported_dark(self):
        light, _ = check_lighting(blank(1, 600), ComplianceThresholds())
        self.assertEqual([i.code for i in light.issues], ["IMAGE_TOO_BRIGHT"])


class TestShadows(unittest.TestCase):
    def test_flat_centre_has_no_shadows(self):
        reading = q.detect_shadows(portrait())
        self.assertFalse(reading.harsh)
        self.assertEqual(reading.score, 1.0)

    def test_strong_edges_are_harsh(self):
        reading = q.detect_shadows(_striped_centre())
        self.assertTrue(reading.harsh)
        self.assertGreater(reading.harsh_ratio, 0.1)

    def test_gradient_magnitude_of_step(self):
        gray = np.zeros((5, 6))
        gray[:, 3:] = 100.0
        mag = q.gradient_magnitude(gray)
        self.assertAlmostEqual(float(mag[2, 0]), 0.0)
        self.assertAlmostEqual(float(mag[2, 2]), 400.0)


class TestLightingIssueOrder(unittest.TestCase):
    def test_only_most_severe_issue_is_reported(self):
        lighting = q.LightingReading(50.0, 2000.0, 20.0, 80.0, True, False, True, 0.3)
        shadows = q.ShadowReading(150.0, 0.5, True)
        self.assertEqual(lighting_issue(lighting, shadows).code, "IMAGE_TOO_DARK")

        lighting = q.LightingReading(150.0, 2000.0, 120.0, 180.0, False, False, True, 0.7)
        self.assertEqual(lighting_issue(lighting, shadows).code, "UNEVEN_LIGHTING")

        lighting = q.LightingReading(150.0, 0.0, 150.0, 150.0, False, False, False, 1.0)
        self.assertEqual(lighting_issue(lighting, shadows).code, "HARSH_SHADOWS")
        self.assertIsNone(lighting_issue(lighting, q.ShadowReading(0.0, 0.0, False)))

    def test_check_lighting_reports_shadows_on_shadow_check(self):
        light, shadow = check_lighting(_striped_centre(), ComplianceThresholds())
        codes = [i.code for i in light.issues + shadow.issues]
        self.assertLessEqual(len(codes), 1)
        self.assertFalse(shadow.passed)


class TestSharpnessAndNoise(unittest.TestCase):
    def test_flat_image_has_no_sharpness(self):
        self.assertEqual(q.laplacian_sharpness(blank()), 0.0)
        self.assertEqual(q.laplacian_sharpness(blank(2, 2)), 0.0)

    def test_detailed_image_is_sharp(self):
        self.assertGreater(q.laplacian_sharpness(_noise_image()), 100.0)

    def test_noise_on_flat_and_grainy_images(self):
        self.assertEqual(q.estimate_noise(blank()), 0.0)
        self.assertGreater(q.estimate_noise(_noise_image()), 10.0)

    def test_noise_is_reproducible(self):
        rgb = _noise_image(7)
        self.assertEqual(q.estimate_noise(rgb, seed=3), q.estimate_noise(rgb, seed=3))

    def test_noise_on_empty_image(self):
        self.assertEqual(q.estimate_noise(np.zeros((0, 0, 3), dtype=np.uint8)), 0.0)


if __name__ == "__main__":
    unittest.main()
