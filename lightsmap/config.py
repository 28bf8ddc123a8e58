from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_RUN_FILE = BASE_DIR / "data" / "my_run.json"
DEFAULT_API_URL = "http://127.0.0.1:8000"


def load_env_file(base_dir: Path, filename: str = ".env") -> None:
    """Load KEY=VALUE pairs from a local .env file.

    Variables already set in the environment win.
    """
    env_path = base_dir / filename
    if not env_path.exists():
        return
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            os.environ.setdefault(key, value.strip().strip('"').strip("'"))


def _first_env(*names: str) -> str:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


@dataclass(slots=True)
class Settings:
    supabase_url: str
    supabase_service_key: str
    supabase_anon_key: str
    mapbox_token: str
    run_file: Path
    api_url: str

    @property
    def mapbox_configured(self) -> bool:
        # "test" is the placeholder token used before a real one is issued.
        return bool(self.mapbox_token) and self.mapbox_token != "test"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @classmethod
    def from_env(cls, base_dir: Path = BASE_DIR) -> Settings:
        load_env_file(base_dir)
        run_file = _first_env("LIGHTSMAP_RUN_FILE")
        return cls(
            supabase_url=_first_env("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
            supabase_service_key=_first_env("SUPABASE_SERVICE_ROLE_KEY"),
            supabase_anon_key=_first_env("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
            mapbox_token=_first_env("MAPBOX_TOKEN", "NEXT_PUBLIC_MAPBOX_TOKEN"),
            run_file=Path(run_file) if run_file else DEFAULT_RUN_FILE,
            api_url=_first_env("LIGHTSMAP_API_URL") or DEFAULT_API_URL,
        )
