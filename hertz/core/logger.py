#!/usr/bin/env python3

"""
Centralized Logging System for Hertz
====================================

Configurable logging with log levels, categories, and output targets
(console, file, listeners).

Log Levels:
- DEBUG: Hardware commands, signal chaining, poller ticks
- INFO: Node lifecycle transitions, connections
- WARNING: Recoverable issues (missing config, skipped operations)
- ERROR: Failed init/update/dispose of a node, transport failures
- SUCCESS: Successful completion of operations

Usage:
    from hertz.core.logger import get_logger

    logger = get_logger()
    logger.info("Node 3 (motor) ready", category="reconciler")
    logger.error("Failed to update node 3 (motor)", category="reconciler")
"""

import json
import threading
import queue
import time
from datetime import datetime
from typing import Optional, Callable, Dict, Any, List
from pathlib import Path


class LogLevel:
    """Log level constants"""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    SUCCESS = 4  # Special level for successful operations

    NAMES = {
        0: "DEBUG",
        1: "INFO",
        2: "WARNING",
        3: "ERROR",
        4: "SUCCESS"
    }

    ICONS = {
        0: "🔍",  # DEBUG
        1: "ℹ️",   # INFO
        2: "⚠️",   # WARNING
        3: "🚨",  # ERROR
        4: "✅"   # SUCCESS
    }

    # ANSI color codes for terminal output
    COLORS = {
        0: "\033[90m",      # DEBUG - Gray
        1: "\033[97m",      # INFO - White
        2: "\033[93m",      # WARNING - Yellow
        3: "\033[91m",      # ERROR - Red
        4: "\033[92m",      # SUCCESS - Green
        "RESET": "\033[0m"
    }

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level"""
        level_map = {
            "DEBUG": cls.DEBUG,
            "INFO": cls.INFO,
            "WARNING": cls.WARNING,
            "ERROR": cls.ERROR,
            "SUCCESS": cls.SUCCESS
        }
        return level_map.get(level_str.upper(), cls.INFO)


DEFAULT_LOGGING_CONFIG = {
    "level": "INFO",
    "show_timestamps": True,
    "console_output": True,
    "file_output": False,
    "file_path": "logs/hertz.log",
    "use_colors": True,
    "use_icons": True,
    "categories": {}
}


class HertzLogger:
    """
    Centralized logger for Hertz.
    Formatting and output happen on a background thread so that logging from
    the event loop never blocks on console or file I/O.
    """

    def __init__(self, config_path: str = "config/settings.json"):
        """Initialize logger with configuration"""
        self.config_path = config_path
        self.config = self._load_config()

        # Log level configuration
        self.global_level = LogLevel.from_string(self.config.get("level", "INFO"))
        self.category_levels = dict(self.config.get("categories", {}))

        # Output configuration
        self.console_output = self.config.get("console_output", True)
        self.file_output = self.config.get("file_output", False)
        self.file_path = self.config.get("file_path", "logs/hertz.log")

        # Formatting options
        self.show_timestamps = self.config.get("show_timestamps", True)
        self.use_colors = self.config.get("use_colors", True)
        self.use_icons = self.config.get("use_icons", True)

        # Listeners are called synchronously from log()
        self.listeners: List[Callable[[int, str, str, datetime], None]] = []

        self.log_queue = queue.Queue()
        self.processor_running = False
        self.processor_thread: Optional[threading.Thread] = None

        self.log_file = None
        self._setup_file_logging()

        self.start_processor()

    def _load_config(self) -> Dict[str, Any]:
        """Load logging configuration from settings.json"""
        try:
            with open(self.config_path, 'r') as f:
                settings = json.load(f)
                return settings.get("logging", DEFAULT_LOGGING_CONFIG)
        except (FileNotFoundError, json.JSONDecodeError):
            return dict(DEFAULT_LOGGING_CONFIG)

    def _setup_file_logging(self):
        """Setup file logging if enabled"""
        if self.file_output:
            try:
                log_dir = Path(self.file_path).parent
                log_dir.mkdir(parents=True, exist_ok=True)
                self.log_file = open(self.file_path, 'a', encoding='utf-8')
            except OSError as e:
                print(f"Failed to setup file logging: {e}")
                self.file_output = False

    def start_processor(self):
        """Start the log processor thread"""
        if not self.processor_running:
            self.processor_running = True
            self.processor_thread = threading.Thread(
                target=self._process_logs,
                daemon=True,
                name="LogProcessor"
            )
            self.processor_thread.start()

    def stop_processor(self):
        """Stop the log processor thread, draining pending messages first"""
        self.processor_running = False
        if self.processor_thread:
            self.processor_thread.join(timeout=1.0)
        self._drain()
        if self.log_file:
            self.log_file.close()
            self.log_file = None

    def _process_logs(self):
        """Process log messages from queue (runs in background thread)"""
        while self.processor_running:
            try:
                entry = self.log_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            self._write(*entry)
            self.log_queue.task_done()

    def _drain(self):
        while True:
            try:
                entry = self.log_queue.get_nowait()
            except queue.Empty:
                return
            self._write(*entry)
            self.log_queue.task_done()

    def _write(self, timestamp: datetime, level: int, category: str, message: str):
        formatted = self._format_message(timestamp, level, category, message)
        try:
            if self.console_output:
                print(formatted["console"])
            if self.file_output and self.log_file:
                self.log_file.write(formatted["file"] + "\n")
                self.log_file.flush()
        except (OSError, ValueError) as e:
            # Don't let processor thread crash on a closed stream
            print(f"Log processor error: {e}")
            time.sleep(0.1)

    def _format_message(self, timestamp: datetime, level: int, category: str, message: str) -> Dict[str, str]:
        """Format log message for different outputs"""
        level_name = LogLevel.NAMES[level]
        level_icon = LogLevel.ICONS[level] if self.use_icons else ""

        time_str = ""
        if self.show_timestamps:
            time_str = f"[{timestamp.strftime('%H:%M:%S.%f')[:-3]}] "

        category_str = f"[{category}] " if category else ""

        if self.use_colors:
            color = LogLevel.COLORS[level]
            reset = LogLevel.COLORS["RESET"]
            console_msg = f"{time_str}{color}{level_icon} {level_name:7}{reset} {category_str}{message}"
        else:
            console_msg = f"{time_str}{level_icon} {level_name:7} {category_str}{message}"

        # File output (no colors)
        file_msg = f"{time_str}{level_name:7} {category_str}{message}"

        return {
            "console": console_msg,
            "file": file_msg
        }

    def _should_log(self, level: int, category: Optional[str] = None) -> bool:
        """Determine if message should be logged based on level and category"""
        if category and category in self.category_levels:
            category_level = LogLevel.from_string(self.category_levels[category])
            return level >= category_level

        return level >= self.global_level

    def log(self, level: int, message: str, category: Optional[str] = None):
        """
        Log a message at specified level.

        Args:
            level: Log level (use LogLevel constants)
            message: Message to log
            category: Optional category (e.g., "reconciler", "poller", "serial")
        """
        if not self._should_log(level, category):
            return

        timestamp = datetime.now()
        for listener in list(self.listeners):
            listener(level, category or "", message, timestamp)
        self.log_queue.put((timestamp, level, category or "", message))

    def debug(self, message: str, category: Optional[str] = None):
        """Log debug message (hardware commands, scheduling details)"""
        self.log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        """Log info message (lifecycle transitions, connections)"""
        self.log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        """Log warning message (non-critical issues)"""
        self.log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        """Log error message (node failures, transport failures)"""
        self.log(LogLevel.ERROR, message, category)

    def success(self, message: str, category: Optional[str] = None):
        """Log success message (successful operation completion)"""
        self.log(LogLevel.SUCCESS, message, category)

    def log_hardware_call(self, function_name: str, args: str = "", category: Optional[str] = None):
        """Log hardware function call (DEBUG level)"""
        message = f"Hardware call: {function_name}"
        if args:
            message += f"({args})"
        self.debug(message, category or "hardware")

    def log_state_change(self, component: str, old_state: str, new_state: str, category: Optional[str] = None):
        """Log component state change (DEBUG level, these are frequent)"""
        self.debug(f"{component}: {old_state} → {new_state}", category)

    def add_listener(self, callback: Callable[[int, str, str, datetime], None]):
        """Register callback(level, category, message, timestamp)"""
        if callback not in self.listeners:
            self.listeners.append(callback)

    def remove_listener(self, callback: Callable[[int, str, str, datetime], None]):
        if callback in self.listeners:
            self.listeners.remove(callback)

    def set_log_level(self, level: str):
        """Change global log level at runtime"""
        self.global_level = LogLevel.from_string(level)

    def set_category_level(self, category: str, level: str):
        """Set log level for specific category"""
        self.category_levels[category] = level


# Singleton instance
_logger_instance: Optional[HertzLogger] = None
_logger_lock = threading.Lock()


def get_logger(config_path: str = "config/settings.json") -> HertzLogger:
    """
    Get singleton logger instance.

    Args:
        config_path: Path to settings.json configuration file

    Returns:
        HertzLogger instance
    """
    global _logger_instance

    if _logger_instance is None:
        with _logger_lock:
            if _logger_instance is None:
                _logger_instance = HertzLogger(config_path)

    return _logger_instance


def shutdown_logger():
    """Shutdown the logger (call on application exit)"""
    global _logger_instance

    if _logger_instance:
        _logger_instance.stop_processor()
        _logger_instance = None
