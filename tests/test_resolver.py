import pytest

from omnichat.messaging.platform.codec import TAG_BIT
from omnichat.messaging.platform.resolver import (
    TargetTypeResolver,
    infer_discord_target,
    infer_telegram_target,
)
from omnichat.messaging.platform.types import TargetType


def _make_resolver(store: dict[str, TargetType] | None = None) -> TargetTypeResolver:
    return TargetTypeResolver(infer_telegram_target, store=store)


class TestTelegramInference:
    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            ("@news_channel", TargetType.CHANNEL),
            ("12345", TargetType.USER),
            ("-9876", TargetType.GROUP),
            ("-1001234567890", TargetType.GROUP),
            (str(TAG_BIT | 12345), TargetType.USER),
        ],
    )
    def test_known_formats(self, target: str, expected: TargetType) -> None:
        assert infer_telegram_target(target) == expected

    @pytest.mark.parametrize("target", ["", "0", "abc", "12a", "1.5"])
    def test_unknown_formats(self, target: str) -> None:
        assert infer_telegram_target(target) is None


class TestDiscordInference:
    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            ("channel:1172614783120457801", TargetType.CHANNEL),
            ("<#1172614783120457801>", TargetType.CHANNEL),
            ("user:80351110224678912", TargetType.USER),
            ("<@80351110224678912>", TargetType.USER),
            ("<@!80351110224678912>", TargetType.USER),
        ],
    )
    def test_prefixes_and_mentions(self, target: str, expected: TargetType) -> None:
        assert infer_discord_target(target) == expected

    def test_bare_snowflake_is_ambiguous(self) -> None:
        assert infer_discord_target("1172614783120457801") is None


class TestResolve:
    def test_examples(self) -> None:
        resolver = _make_resolver()

        assert resolver.resolve("@anything") == TargetType.CHANNEL
        assert resolver.resolve("12345") == TargetType.USER
        assert resolver.resolve("-9876") == TargetType.GROUP

    def test_explicit_type_wins_and_is_cached(self) -> None:
        resolver = _make_resolver()

        assert resolver.resolve("12345", TargetType.GROUP) == TargetType.GROUP
        assert resolver.cached("12345") == TargetType.GROUP
        assert resolver.resolve("12345") == TargetType.GROUP

    def test_explicit_type_overwrites_previous_entry(self) -> None:
        resolver = _make_resolver()
        resolver.resolve("-9876")

        assert resolver.resolve("-9876", TargetType.CHANNEL) == TargetType.CHANNEL
        assert resolver.resolve("-9876") == TargetType.CHANNEL

    def test_cache_beats_inference(self) -> None:
        store = {"@handle": TargetType.GROUP}
        resolver = _make_resolver(store)

        assert resolver.resolve("@handle") == TargetType.GROUP

    def test_inferred_type_is_cached(self) -> None:
        store: dict[str, TargetType] = {}
        resolver = _make_resolver(store)

        resolver.resolve("-9876")

        assert store == {"-9876": TargetType.GROUP}

    def test_default_is_not_cached(self) -> None:
        store: dict[str, TargetType] = {}
        resolver = _make_resolver(store)

        assert resolver.resolve("not-an-id") == TargetType.USER
        assert store == {}
        assert len(resolver) == 0

    def test_custom_default(self) -> None:
        resolver = TargetTypeResolver(infer_discord_target, default=TargetType.CHANNEL)

        assert resolver.resolve("1172614783120457801") == TargetType.CHANNEL
        assert resolver.cached("1172614783120457801") is None

    def test_seed_and_remember(self) -> None:
        resolver = _make_resolver()
        resolver.seed({"100": TargetType.GROUP})
        resolver.remember("200", TargetType.CHANNEL)

        assert resolver.resolve("100") == TargetType.GROUP
        assert resolver.resolve("200") == TargetType.CHANNEL

    def test_clear_forgets_everything(self) -> None:
        resolver = _make_resolver()
        resolver.resolve("12345", TargetType.GROUP)

        resolver.clear()

        assert len(resolver) == 0
        assert resolver.resolve("12345") == TargetType.USER

    def test_instances_do_not_share_state(self) -> None:
        first = _make_resolver()
        second = _make_resolver()

        first.resolve("12345", TargetType.GROUP)

        assert second.cached("12345") is None
