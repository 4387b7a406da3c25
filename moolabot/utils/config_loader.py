"""
Shared configuration loader for the moola bot
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional

ROLE_KEYS = [
    'whitelist',
    'whitelist_winner',
    'moolalist',
    'moolalist_winner',
    'free_mint',
    'free_mint_winner',
    'mootard',
    'already_wanked',
    'bullas',
    'beras',
]


def load_config(config_filename: str = "config.yml", config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file in config directory

    Args:
        config_filename: Name of config file (defaults to config.yml)
        config_path: Explicit path, overrides the config directory lookup

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file has invalid YAML syntax
    """
    if config_path:
        path = Path(config_path)
    else:
        # Always use config directory from project root
        project_root = Path(__file__).parent.parent.parent
        path = project_root / "config" / config_filename

    if not path.exists():
        raise FileNotFoundError(
            f"Config file '{config_filename}' not found at {path}"
        )

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML syntax in {path}: {e}")

    # Secrets from the environment win over the file
    env_token = os.getenv("DISCORD_BOT_TOKEN")
    if env_token:
        config_data.setdefault('discord_bot', {})['bot_token'] = env_token

    env_link_url = os.getenv("LINK_BASE_URL")
    if env_link_url:
        config_data.setdefault('discord_bot', {})['link_base_url'] = env_link_url

    return config_data


def get_database_path(config: Dict[str, Any]) -> str:
    """Extract database path from config with proper defaults"""
    return config.get('database', {}).get('file', 'moola.db')


def get_log_path(config: Dict[str, Any]) -> str:
    """Extract log path from config with proper defaults"""
    return config.get('logging', {}).get('file', 'logs/moolabot.log')


def get_log_level(config: Dict[str, Any]) -> str:
    """Extract log level from config with proper defaults"""
    return config.get('logging', {}).get('level', 'INFO')


def get_role_ids(config: Dict[str, Any]) -> Dict[str, int]:
    roles = config.get('roles', {})
    return {key: int(roles[key]) for key in ROLE_KEYS if roles.get(key) is not None}


def get_admin_role_ids(config: Dict[str, Any]) -> List[int]:
    return [int(r) for r in config.get('admin_role_ids', [])]


def get_leaderboard_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    section = config.get('leaderboard', {})
    return {
        'page_size': int(section.get('page_size', 10)),
        'excluded_user_ids': [str(i) for i in section.get('excluded_user_ids', [])],
        'allow_all_teams': bool(section.get('allow_all_teams', True)),
    }


def get_rate_limits(config: Dict[str, Any]) -> Dict[str, float]:
    section = config.get('rate_limits', {})
    return {
        'mutation_delay_sec': float(section.get('mutation_delay_sec', 0.1)),
        'batch_size': int(section.get('batch_size', 50)),
        'batch_delay_sec': float(section.get('batch_delay_sec', 1.0)),
    }


def get_bulk_settings(config: Dict[str, Any]) -> Dict[str, int]:
    section = config.get('bulk', {})
    return {
        'page_size': int(section.get('page_size', 100)),
        'progress_every': int(section.get('progress_every', 100)),
    }


def get_link_settings(config: Dict[str, Any]) -> Dict[str, float]:
    section = config.get('link', {})
    return {
        'poll_interval_sec': float(section.get('poll_interval_sec', 5)),
        'max_lifetime_sec': float(section.get('max_lifetime_sec', 300)),
    }


def get_snapshot_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    section = config.get('snapshot', {})
    return {
        'winning_top': int(section.get('winning_top', 2000)),
        'losing_top': int(section.get('losing_top', 700)),
        'temp_dir': section.get('temp_dir', 'temp'),
    }


def get_whitelist_minimum(config: Dict[str, Any]) -> int:
    return int(config.get('whitelist_minimum', 100))


def get_health_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    section = config.get('health', {})
    return {
        'enabled': bool(section.get('enabled', True)),
        'host': section.get('host', '0.0.0.0'),
        'port': int(os.getenv("PORT", section.get('port', 3003))),
    }


def validate_required_keys(config: Dict[str, Any]) -> None:
    """
    Validate that required configuration keys are present

    Raises:
        ValueError: If required keys are missing
    """
    missing_keys = []

    if not config.get('discord_bot', {}).get('bot_token'):
        missing_keys.append('discord_bot.bot_token')

    roles = config.get('roles', {})
    for key in ROLE_KEYS:
        if roles.get(key) is None:
            missing_keys.append(f'roles.{key}')

    if not config.get('admin_role_ids'):
        missing_keys.append('admin_role_ids')

    if missing_keys:
        raise ValueError(f"Missing required configuration keys: {', '.join(missing_keys)}")
