"""Importable callables used by the configuration tests."""

CALLS = []


def record(label: str, times: int = 1) -> None:
    CALLS.extend([label] * times)


def explode() -> None:
    raise RuntimeError("boom")


class Namespace:
    @staticmethod
    def nested(label: str) -> None:
        CALLS.append(f"nested:{label}")
