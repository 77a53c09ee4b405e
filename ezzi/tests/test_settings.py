"""
Tests for settings, token storage and the processing options derived from them.
"""

import json

import pytest
from cryptography.fernet import Fernet

from ezzi.src.application.session_context import ProcessingOptions
from ezzi.src.domain.models.processing import OverlapPolicy
from ezzi.src.infrastructure.storage import AuthStorage, SettingsManager
from ezzi.src.utils.environment import API_BASE_URL_ENV, MOCK_ENV, SELF_HOSTED_ENV, api_base_url_override


class TestSettingsManager:
    """Test cases for SettingsManager."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.dir = tmp_path / "configs"
        self.settings = SettingsManager(settings_dir=self.dir)

    def stored(self):
        return json.loads((self.dir / "settings.json").read_text(encoding="utf-8"))

    def test_defaults_written_on_first_run(self):
        assert (self.dir / "settings.json").exists()
        assert (self.dir / ".key").exists()
        assert self.settings.get('queue.max_screenshots') == 2
        assert self.settings.get('api.timeout_seconds') == 300
        assert self.settings.get('processing.overlap_policy') == 'reject'
        assert self.settings.get('window.x') is None

    def test_get_missing_key_returns_default(self):
        assert self.settings.get('nope.nothing', 'fallback') == 'fallback'

    def test_set_persists_across_instances(self):
        self.settings.set('processing.language', 'rust')
        self.settings.set('window.x', 30)

        reloaded = SettingsManager(settings_dir=self.dir)

        assert reloaded.get('processing.language') == 'rust'
        assert reloaded.get('window.x') == 30

    def test_token_is_encrypted_at_rest(self):
        self.settings.set('auth.token', 'secret-bearer')

        on_disk = self.stored()['auth']['token']
        assert on_disk.startswith('enc:')
        assert 'secret-bearer' not in on_disk
        assert self.settings.get('auth.token') == 'secret-bearer'
        assert SettingsManager(settings_dir=self.dir).get('auth.token') == 'secret-bearer'

    def test_invalid_values_replaced_by_defaults(self):
        (self.dir / "settings.json").write_text(json.dumps({
            'queue': {'max_screenshots': 'many'},
            'advanced': {'ignore_ssl_verification': 1},
            'processing': 'not a section',
            'unknown': {'key': True},
        }), encoding="utf-8")

        reloaded = SettingsManager(settings_dir=self.dir)

        assert reloaded.get('queue.max_screenshots') == 2
        assert reloaded.get('advanced.ignore_ssl_verification') is False
        assert reloaded.get('processing.language') == 'python'
        assert reloaded.get('unknown.key') is None

    def test_out_of_range_values_replaced_by_defaults(self):
        (self.dir / "settings.json").write_text(json.dumps({
            'app': {'app_mode': 'system_design'},
            'processing': {'overlap_policy': 'coalesce', 'language': 'go'},
            'queue': {'max_screenshots': 0, 'max_extra_screenshots': 5},
            'window': {'toggle_cooldown_ms': -1, 'x': 40},
        }), encoding="utf-8")

        reloaded = SettingsManager(settings_dir=self.dir)

        assert reloaded.get('app.app_mode') == 'live_interview'
        assert reloaded.get('processing.overlap_policy') == 'coalesce'
        assert reloaded.get('processing.language') == 'go'
        assert reloaded.get('queue.max_screenshots') == 2
        assert reloaded.get('queue.max_extra_screenshots') == 5
        assert reloaded.get('window.toggle_cooldown_ms') == 300
        assert reloaded.get('window.x') == 40

    def test_token_unreadable_with_another_key(self):
        self.settings.set('auth.token', 'secret-bearer')
        (self.dir / ".key").write_bytes(Fernet.generate_key())

        assert SettingsManager(settings_dir=self.dir).get('auth.token') == ''

    def test_corrupt_file_falls_back_to_defaults(self):
        (self.dir / "settings.json").write_text("{not json", encoding="utf-8")

        reloaded = SettingsManager(settings_dir=self.dir)

        assert reloaded.get('app.app_mode') == 'live_interview'

    def test_change_callbacks(self):
        changed = []
        self.settings.on_change(changed.append)

        self.settings.set('app.app_mode', 'leetcode_solver')
        self.settings.remove_change_callback(changed.append)
        self.settings.set('app.app_mode', 'live_interview')

        assert changed == ['app.app_mode']

    def test_delete_and_reset(self):
        self.settings.set('processing.locale', 'de-DE')
        self.settings.delete('processing.locale')
        assert self.settings.get('processing.locale') is None

        self.settings.reset_to_defaults()
        assert self.settings.get('processing.locale') == 'en-US'


class TestAuthStorage:
    """Test cases for AuthStorage."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.now = 1_000.0
        self.settings = SettingsManager(settings_dir=tmp_path / "configs")
        self.auth = AuthStorage(self.settings, clock=lambda: self.now)

    def test_no_token(self):
        assert self.auth.get_token() is None
        assert not self.auth.is_authenticated

    def test_token_without_expiry(self):
        self.auth.set_token('abc')

        self.now += 10 ** 9
        assert self.auth.get_token() == 'abc'

    def test_expired_token_is_cleared(self):
        self.auth.set_token('abc', expires_in=60)
        assert self.auth.get_token() == 'abc'

        self.now += 61

        assert self.auth.get_token() is None
        assert self.settings.get('auth.token') == ''
        assert self.settings.get('auth.token_expiry') is None

    def test_clear(self):
        self.auth.set_token('abc')
        self.auth.clear()
        assert not self.auth.is_authenticated


class TestProcessingOptions:
    """Options read from settings and environment toggles."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.settings = SettingsManager(settings_dir=tmp_path / "configs")

    def test_from_settings(self):
        self.settings.set('processing.language', 'java')
        self.settings.set('processing.overlap_policy', 'last_wins')

        options = ProcessingOptions.from_settings(self.settings)

        assert options.language == 'java'
        assert options.locale == 'en-US'
        assert options.overlap_policy is OverlapPolicy.LAST_WINS
        assert not options.is_mock
        assert not options.self_hosted

    def test_unknown_policy_is_reject(self):
        self.settings.set('processing.overlap_policy', 'whatever')
        assert ProcessingOptions.from_settings(self.settings).overlap_policy is OverlapPolicy.REJECT

    def test_environment_toggles(self, monkeypatch):
        monkeypatch.setenv(MOCK_ENV, 'true')
        monkeypatch.setenv(SELF_HOSTED_ENV, '1')

        options = ProcessingOptions.from_settings(self.settings)

        assert options.is_mock
        assert options.self_hosted

    def test_api_base_url_override(self, monkeypatch):
        assert api_base_url_override() is None
        monkeypatch.setenv(API_BASE_URL_ENV, 'https://solve.example.com/')
        assert api_base_url_override() == 'https://solve.example.com'
