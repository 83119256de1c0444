import json
import tempfile
import unittest
from pathlib import Path

from fsrskit.config_loader import load_parameters, save_parameters
from fsrskit.core import ValidationError
from fsrskit.fsrs_defaults import DEFAULT_PARAMETERS


class TestConfigLoader(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_then_load(self):
        path = save_parameters(self.root / "nested" / "params.json", DEFAULT_PARAMETERS)
        self.assertTrue(path.exists())
        self.assertEqual(load_parameters(path), DEFAULT_PARAMETERS)

    def test_custom_key_and_bare_list(self):
        keyed = self.root / "keyed.json"
        keyed.write_text(json.dumps({"weights": list(DEFAULT_PARAMETERS)}))
        self.assertEqual(load_parameters(keyed, key="weights"), DEFAULT_PARAMETERS)

        bare = self.root / "bare.json"
        bare.write_text(json.dumps(list(DEFAULT_PARAMETERS)))
        self.assertEqual(load_parameters(bare), DEFAULT_PARAMETERS)

    def test_rejects_bad_files(self):
        missing_key = self.root / "missing.json"
        missing_key.write_text(json.dumps({"other": 1}))
        short = self.root / "short.json"
        short.write_text(json.dumps({"parameters": [1.0, 2.0]}))
        broken = self.root / "broken.json"
        broken.write_text("{not json")
        for path in (missing_key, short, broken):
            with self.assertRaises(ValidationError):
                load_parameters(path)

    def test_save_validates(self):
        with self.assertRaises(ValidationError):
            save_parameters(self.root / "x.json", [1.0] * 3)


if __name__ == "__main__":
    unittest.main()
