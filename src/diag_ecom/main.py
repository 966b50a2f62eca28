"""Point d'entrée CLI : diag-ecom input_dir output_file."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from diag_ecom.config.loader import AppConfig, load_config
from diag_ecom.models import ConfigError, NoResultError
from diag_ecom.parsers import SUPPORTED_EXTENSIONS
from diag_ecom.pipeline import PipelineOrchestrator

logger = logging.getLogger("diag_ecom.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

EXIT_UNEXPECTED = 1
EXIT_CONFIG = 2
EXIT_NO_RESULT = 3

EPILOG = (
    f"Codes de sortie : {EXIT_CONFIG} configuration invalide, "
    f"{EXIT_NO_RESULT} aucun export lisible, {EXIT_UNEXPECTED} erreur inattendue."
)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    extensions = ", ".join(sorted(SUPPORTED_EXTENSIONS))
    parser = argparse.ArgumentParser(
        prog="diag-ecom",
        description="Diagnostic financier multi-marketplace à partir d'exports de transactions",
        epilog=EPILOG,
    )
    parser.add_argument("input_dir", help=f"Répertoire contenant les exports ({extensions})")
    parser.add_argument("output_file", help="Classeur Excel du diagnostic")
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire contenant exchange_rates.yaml et thresholds.yaml (défaut : ./config/)",
    )
    parser.add_argument("--log-level", default="INFO", choices=VALID_LOG_LEVELS, help="Niveau de log (défaut : INFO)")
    return parser.parse_args(args)


def _load_config_or_exit(config_dir: Path) -> AppConfig:
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(EXIT_CONFIG)
    logger.debug("Devise de reporting : %s", config.reporting_currency)
    return config


def main(args: list[str] | None = None) -> None:
    """Analyse le répertoire d'exports et écrit le diagnostic Excel."""
    parsed = parse_args(args)
    logging.basicConfig(level=getattr(logging, parsed.log_level), format=LOG_FORMAT)

    config = _load_config_or_exit(Path(parsed.config_dir))
    output_path = Path(parsed.output_file)

    try:
        PipelineOrchestrator().run(input_dir=Path(parsed.input_dir), output_path=output_path, config=config)
    except NoResultError:
        print("ERREUR : Aucun fichier n'a pu être lu. Vérifiez les formats et le contenu des exports.")
        sys.exit(EXIT_NO_RESULT)
    except Exception:
        logger.exception("Erreur inattendue pendant le diagnostic")
        sys.exit(EXIT_UNEXPECTED)

    logger.info("Diagnostic écrit dans %s", output_path)


if __name__ == "__main__":
    main()
