import unittest

import numpy as np

from tests._test_path import SRC  # noqa: F401
from tests._synthetic import SKIN, blank, draw_oval, portrait, two_faces

from photocheck.analysis import regions as rg
from photocheck.core.models import ComplianceThresholds, FaceBox


class TestFindSkinRegions(unittest.TestCase):
    def test_components_in_scan_order_with_bounds(self):
        mask = np.zeros((8, 8), dtype=bool)
        mask[3:6, 0:2] = True  # starts lower but further left
        mask[1:3, 5:7] = True
        comps = rg.find_skin_regions(mask)
        self.assertEqual(len(comps), 2)
        self.assertEqual((comps[0].min_x, comps[0].min_y, comps[0].max_x, comps[0].max_y), (5, 1, 6, 2))
        self.assertEqual(comps[0].cells, 4)
        self.assertEqual((comps[1].min_x, comps[1].min_y, comps[1].max_x, comps[1].max_y), (0, 3, 1, 5))
        self.assertEqual(comps[1].cells, 6)

    def test_diagonal_cells_are_not_connected(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[0, 0] = mask[1, 1] = True
        self.assertEqual(len(rg.find_skin_regions(mask)), 2)

    def test_u_shape_is_one_component(self):
        mask = np.zeros((6, 7), dtype=bool)
        mask[1:5, 1] = True
        mask[1:5, 5] = True
        mask[4, 1:6] = True
        comps = rg.find_skin_regions(mask)
        self.assertEqual(len(comps), 1)
        self.assertEqual((comps[0].min_x, comps[0].min_y, comps[0].max_x, comps[0].max_y), (1, 1, 5, 4))
        self.assertEqual(comps[0].cells, int(mask.sum()))

    def test_empty_mask(self):
        self.assertEqual(rg.find_skin_regions(np.zeros((4, 4), dtype=bool)), [])


class TestSamplers(unittest.TestCase):
    def test_background_samples_edge_bands(self):
        values = rg.sample_background(blank(), band=50, step=10)
        self.assertEqual(values.size, 1200)
        self.assertTrue(np.allclose(values, 255.0))

    def test_background_ignores_centre(self):
        values = rg.sample_background(portrait(), band=50, step=10)
        self.assertTrue(np.allclose(values, 255.0))

    def test_center_samples(self):
        values = rg.sample_center(portrait(), step=5)
        self.assertEqual(values.size, 60 * 60)
        self.assertAlmostEqual(float(values.mean()), 183.9, places=3)


class TestSymmetry(unittest.TestCase):
    def test_symmetric_oval_scores_one(self):
        box = FaceBox(80, 55, 440, 490)
        self.assertAlmostEqual(rg.symmetry_score(portrait(), box), 1.0, places=6)

    def test_half_dark_box_scores_low(self):
        rgb = blank()
        rgb[:, :300] = 0
        self.assertLess(rg.symmetry_score(rgb, FaceBox(100, 100, 400, 400)), 0.6)

    def test_box_outside_image(self):
        self.assertEqual(rg.symmetry_score(blank(), FaceBox(0, 700, 100, 100)), 0.0)


class TestFacialFeatures(unittest.TestCase):
    BOX = FaceBox(80, 55, 440, 490)

    def test_plain_oval_has_no_features(self):
        self.assertFalse(rg.has_facial_features(portrait(), self.BOX))

    def test_dark_eye_band(self):
        rgb = portrait()
        rgb[190:240, 160:260] = (50, 40, 40)
        rgb[190:240, 340:440] = (50, 40, 40)
        self.assertTrue(rg.has_facial_features(rgb, self.BOX))

    def test_mouth_alone_is_enough(self):
        rgb = portrait()
        rgb[420:450, 240:360] = (60, 30, 30)
        self.assertTrue(rg.has_facial_features(rgb, self.BOX))

    def test_tiny_box(self):
        self.assertFalse(rg.has_facial_features(portrait(), FaceBox(0, 0, 5, 5)))


class TestEdgeEllipse(unittest.TestCase):
    @staticmethod
    def _outline(cx=300, cy=300, rx=150, ry=180):
        # grey head shape: not skin-toned, but a clear outline
        return draw_oval(blank(), cx, cy, rx, ry, color=(120, 120, 120))

    def test_outline_without_skin(self):
        rgb = self._outline()
        self.assertEqual(rg.find_face_candidates(rgb), [])
        region = rg.find_edge_ellipse(rgb)
        self.assertIsNotNone(region)
        self.assertEqual(region.source, "edges")
        self.assertAlmostEqual(region.confidence, 0.65)
        self.assertLess(abs(region.box.width - 300), 10)
        self.assertLess(abs(region.box.height - 360), 10)

    def test_estimate_prefers_ellipse_over_centred_box(self):
        region = rg.estimate_face_region(self._outline())
        self.assertFalse(region.is_fallback)
        self.assertEqual(region.source, "edges")

    def test_off_centre_or_small_outline_is_rejected(self):
        self.assertIsNone(rg.find_edge_ellipse(self._outline(cx=130, cy=130, rx=100, ry=110)))
        self.assertIsNone(rg.find_edge_ellipse(self._outline(rx=40, ry=50)))
        self.assertIsNone(rg.find_edge_ellipse(blank()))


class TestEstimateFaceRegion(unittest.TestCase):
    def test_centred_oval(self):
        region = rg.estimate_face_region(portrait())
        self.assertFalse(region.is_fallback)
        self.assertGreater(region.area_ratio, 0.5)
        self.assertLess(region.area_ratio, 0.7)
        cx, cy = region.box.center
        self.assertLess(abs(cx - 300), 15)
        self.assertLess(abs(cy - 300), 15)
        self.assertGreater(region.confidence, 0.7)
        self.assertGreater(region.symmetry, 0.95)

    def test_blank_image_gives_fallback(self):
        region = rg.estimate_face_region(blank())
        self.assertTrue(region.is_fallback)
        self.assertEqual(region.source, "fallback")
        self.assertEqual(region.confidence, 0.0)
        self.assertEqual((region.box.left, region.box.top, region.box.width), (200.0, 200.0, 200.0))

    def test_all_skin_is_rejected_but_raises_fallback_confidence(self):
        region = rg.estimate_face_region(blank(color=SKIN))
        self.assertTrue(region.is_fallback)
        self.assertAlmostEqual(region.confidence, 0.3, places=6)

    def test_tiny_image(self):
        region = rg.estimate_face_region(blank(2, 2))
        self.assertTrue(region.is_fallback)
        self.assertEqual(region.confidence, 0.0)

    def test_best_candidate_wins_first_on_ties(self):
        rgb = two_faces()
        candidates = rg.find_face_candidates(rgb)
        self.assertEqual(len(candidates), 2)
        best = max(candidates, key=lambda r: r.score)
        self.assertEqual(rg.estimate_face_region(rgb).box, best.box)

    def test_candidate_filters_follow_thresholds(self):
        t = ComplianceThresholds(candidate_min_area=0.2)
        self.assertEqual(rg.find_face_candidates(two_faces(), t), [])


if __name__ == "__main__":
    unittest.main()
