"""Slack Web API access for thread images and status messages."""

from threadscribe.slack.client import SlackMessenger, find_images_in_thread
from threadscribe.slack.downloader import SlackImageDownloader

__all__ = [
    "SlackMessenger",
    "SlackImageDownloader",
    "find_images_in_thread",
]
