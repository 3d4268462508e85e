import json
import tempfile
import unittest
from pathlib import Path

from aimpick.models import Selection
from aimpick.profiles import ProfileLibrary, ensure_default_profiles, load_url_profiles
from aimpick.web_bridge import (
    BridgeRequestError,
    HostBridge,
    InstallFromProfileRequest,
    SaveSelectionProfileRequest,
)


class _FakePage:
    def __init__(self):
        self.exposed: dict[str, object] = {}

    def expose_function(self, name: str, fn: object) -> None:
        self.exposed[name] = fn


class HostBridgeTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.library = ProfileLibrary(self.root)
        self.logged: list[str] = []
        self.bridge = HostBridge(self.library, current_url=lambda: "https://site.test/", log=self.logged.append)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_get_config_on_empty_directory_uses_fallbacks(self) -> None:
        payload = json.loads(self.bridge.get_config())
        self.assertEqual(payload["browserProfiles"], ["default"])
        self.assertEqual(payload["selectionProfiles"], ["sample"])
        self.assertEqual(payload["urlProfiles"], [])
        self.assertEqual(payload["currentBrowserProfile"], "default")
        self.assertEqual(payload["currentUrl"], "https://site.test/")

    def test_save_browser_profile_rejects_bad_names(self) -> None:
        for name in ("a/b", "has space", "x" * 81):
            result = self.bridge.save_browser_profile({"name": name, "content": "a=1"})
            self.assertEqual(result, "ERR: invalid name (use letters/numbers/._-)", name)
        self.assertEqual(self.bridge.save_browser_profile({"name": "   ", "content": ""}), "ERR: missing name")
        self.assertFalse(any(self.root.iterdir()))

    def test_save_selection_profile_rejects_bad_names(self) -> None:
        for name in ("../up", "a b", "y" * 81):
            result = self.bridge.save_selection_profile({"name": name, "items": []})
            self.assertTrue(result.startswith("ERR: invalid name"), result)
        self.assertFalse((self.root / "selection_profiles").exists())

    def test_save_browser_profile_reports_path_and_size(self) -> None:
        result = self.bridge.save_browser_profile(json.dumps({"name": "fast", "content": "viewportWidth=1\r\n"}))
        path = self.root / "fast.properties"
        self.assertEqual(result, f"OK: saved {path.as_posix()} (16 bytes)")
        self.assertEqual(path.read_bytes(), b"viewportWidth=1\n")
        self.assertEqual(self.bridge.load_browser_profile("fast"), "viewportWidth=1\n")
        self.assertEqual(self.bridge.load_browser_profile({"name": "fast"}), "viewportWidth=1\n")
        self.assertEqual(self.bridge.load_browser_profile("nope"), "")

    def test_selection_profile_save_and_load(self) -> None:
        request = {
            "name": "gallery",
            "notes": "hero shots",
            "items": [{"selector": "#hero", "tag": "img", "kind": "image", "text": ""}],
        }
        result = self.bridge.save_selection_profile(request)
        self.assertTrue(result.startswith("OK: saved "), result)
        loaded = json.loads(self.bridge.load_selection_profile("gallery"))
        self.assertEqual(loaded["name"], "gallery")
        self.assertEqual(loaded["notes"], "hero shots")
        self.assertTrue(loaded["createdAt"])
        self.assertEqual(loaded["items"][0]["selector"], "#hero")

    def test_load_selection_profile_missing_or_invalid_returns_empty_object(self) -> None:
        self.assertEqual(self.bridge.load_selection_profile("missing"), "{}")
        self.library.selections.put("broken", "{nope")
        self.assertEqual(self.bridge.load_selection_profile("broken"), "{}")
        self.assertEqual(self.bridge.load_selection_profile("bad/name"), "{}")

    def test_save_url_profiles_validates_entries(self) -> None:
        self.assertEqual(self.bridge.save_url_profiles({"profiles": "nope"}), "ERR: profiles must be array")
        bad_url = self.bridge.save_url_profiles({"profiles": [{"name": "ftp", "url": "ftp://x"}]})
        self.assertTrue(bad_url.startswith("ERR: url must start with"), bad_url)
        self.assertEqual(self.bridge.save_url_profiles("{"), "ERR: invalid JSON: Expecting property name enclosed in double quotes")
        ok = self.bridge.save_url_profiles({"profiles": [{"name": "Docs", "url": "https://docs.test"}]})
        self.assertEqual(ok, "OK")
        self.assertEqual(load_url_profiles(self.library), [{"name": "Docs", "url": "https://docs.test"}])

    def test_install_from_profile_without_installer(self) -> None:
        ensure_default_profiles(self.library)
        self.assertEqual(
            self.bridge.install_from_profile({"selProfile": "sample"}),
            "ERR: no live page to export from",
        )
        self.assertEqual(self.bridge.install_from_profile({}), "ERR: missing selProfile")
        self.assertTrue(self.bridge.install_from_profile({"selProfile": "ghost"}).startswith("ERR: "))

    def test_install_from_profile_calls_installer_with_label(self) -> None:
        ensure_default_profiles(self.library)
        calls: list[tuple[list[Selection], str]] = []

        def installer(selections: list[Selection], label: str) -> str:
            calls.append((selections, label))
            return "OK"

        bridge = HostBridge(self.library, current_browser_profile="stealth", installer=installer)
        self.assertEqual(bridge.dispatch("installFromProfile", {"selProfile": "sample", "selIndex": 1}), "OK")
        self.assertEqual(len(calls), 1)
        selections, label = calls[0]
        self.assertEqual(label, "stealth / sample")
        self.assertEqual([item.selector for item in selections], ["h1"])
        self.assertEqual(bridge.dispatch("installFromProfile", {"selProfile": "sample", "selIndex": 5}), "ERR: no selections")

    def test_dispatch_unknown_operation(self) -> None:
        self.assertEqual(self.bridge.dispatch("deleteEverything", {}), "ERR: unknown operation 'deleteEverything'")

    def test_expose_registers_prefixed_bindings(self) -> None:
        page = _FakePage()
        self.bridge.expose(page)
        self.assertEqual(
            sorted(page.exposed),
            sorted(
                [
                    "aimGetConfig",
                    "aimSaveUrlProfiles",
                    "aimSaveBrowserProfile",
                    "aimLoadBrowserProfile",
                    "aimLoadSelectionProfile",
                    "aimSaveSelectionProfile",
                    "aimInstallFromProfile",
                ]
            ),
        )
        result = page.exposed["aimSaveBrowserProfile"]('{"name": "x", "content": "a=1"}')
        self.assertTrue(result.startswith("OK: saved "))
        self.assertEqual(json.loads(page.exposed["aimGetConfig"]())["browserProfiles"], ["x"])

    def test_errors_are_logged(self) -> None:
        self.bridge.save_browser_profile({"name": "a/b"})
        self.assertTrue(any("bridge_op=saveBrowserProfile error=" in line for line in self.logged))


class BridgeRequestTests(unittest.TestCase):
    def test_selection_request_requires_items_array(self) -> None:
        with self.assertRaises(BridgeRequestError) as ctx:
            SaveSelectionProfileRequest.parse({"name": "ok", "items": {}})
        self.assertEqual(str(ctx.exception), "items must be array")

    def test_install_request_clamps_index(self) -> None:
        request = InstallFromProfileRequest.parse('{"selProfile": " sample ", "selIndex": -3}')
        self.assertEqual(request.sel_profile, "sample")
        self.assertEqual(request.sel_index, 0)

    def test_non_object_payload_is_rejected(self) -> None:
        with self.assertRaises(BridgeRequestError):
            InstallFromProfileRequest.parse("[1, 2]")
        with self.assertRaises(BridgeRequestError):
            InstallFromProfileRequest.parse(None)


if __name__ == "__main__":
    unittest.main()
