"""Configuration for pull request harvesting."""

import os

from dotenv import load_dotenv

load_dotenv()

# Auth: personal access token, overridable with --token
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")

# REST endpoint (GitHub Enterprise installs use https://host/api/v3)
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")

# Root for per-repository checkpoint, report and log files
DATA_DIR = os.environ.get("PRHARVEST_DATA_DIR", "data")

# Suspend instead of calling the API when fewer credits than this remain
QUOTA_SAFETY_THRESHOLD = int(os.environ.get("QUOTA_SAFETY_THRESHOLD", "20"))

# Extraction settings
PER_PAGE = 100  # Max items per API page
MAX_DISCOVERY_PAGES = 100  # Safety ceiling for the closed-PR listing
REQUEST_TIMEOUT = 30.0
