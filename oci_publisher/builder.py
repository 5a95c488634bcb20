"""
Image conversion module for the image publisher.

Exports an image from the local Docker daemon into a directory of loose
OCI artifacts using skopeo.
"""

import logging
import os
import shutil
import signal
import subprocess
import threading

from .errors import ConversionError, ToolMissingError

logger = logging.getLogger(__name__)

# Lines of converter stderr kept in ConversionError messages
STDERR_TAIL_LINES = 20

# Seconds to wait for the output reader once the converter has exited
OUTPUT_DRAIN_TIMEOUT = 5


def check_converter(command: str = "skopeo") -> str:
    """
    Make sure the conversion tool is installed.

    Args:
        command: Executable name or path

    Returns:
        Resolved path to the executable

    Raises:
        ToolMissingError: If the executable cannot be found on PATH
    """
    resolved = shutil.which(command)
    if resolved is None:
        logger.error(f"Converter not found on PATH: {command}")
        raise ToolMissingError(f"{command} is not installed")
    logger.debug(f"Converter found: {resolved}")
    return resolved


def conversion_command(image: str, tag: str, destination: str, command: str = "skopeo") -> list[str]:
    """
    Build the skopeo command line exporting image:tag into destination.

    Example:
        >>> conversion_command("myapp", "latest", "/tmp/ws")
        ['skopeo', 'copy', '--all', 'docker-daemon:myapp:latest', 'dir:/tmp/ws']
    """
    return [
        command,
        "copy",
        "--all",
        f"docker-daemon:{image}:{tag}",
        f"dir:{destination}",
    ]


def _tail(text: str) -> str:
    lines = [line for line in text.splitlines() if line.strip()]
    return "".join(f"\n{line}" for line in lines[-STDERR_TAIL_LINES:])


def _stream_output(stream, command: str, output_lines: list) -> None:
    for line in stream:
        line = line.rstrip()
        if line:
            logger.debug(f"[{command}] {line}")
            output_lines.append(line)


def _kill(process) -> None:
    """Kill the converter's whole process group and reap it."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # already gone
    process.wait()


def run_conversion(image: str, tag: str, destination: str, command: str = "skopeo", timeout: int = 600) -> None:
    """
    Run the conversion tool once, populating destination.

    Args:
        image: Image name in the local Docker daemon
        tag: Image tag
        destination: Existing, empty directory to export into
        command: Converter executable
        timeout: Seconds before the conversion is abandoned

    Raises:
        ConversionError: If the converter exits non-zero, times out or cannot be started

    Behavior:
        - In DEBUG mode: streams converter output line-by-line to logs
        - In normal mode: captures output silently
    """
    cmd = conversion_command(image, tag, destination, command)
    logger.info(f"Converting {image}:{tag} with {command}")
    logger.debug(f"Running command: {' '.join(cmd)}")

    is_debug = logger.getEffectiveLevel() == logging.DEBUG

    try:
        if is_debug:
            # Own session so a timeout can kill anything the converter spawned
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # Merge stderr into stdout
                text=True,
                bufsize=1,  # Line buffered
                start_new_session=True,
            )

            output_lines = []
            reader = threading.Thread(
                target=_stream_output,
                args=(process.stdout, command, output_lines),
                name="converter-output",
                daemon=True,
            )
            reader.start()

            try:
                return_code = process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                _kill(process)
                raise
            finally:
                reader.join(timeout=OUTPUT_DRAIN_TIMEOUT)
                if not reader.is_alive():
                    process.stdout.close()

            if return_code != 0:
                logger.error(f"Conversion failed with exit code {return_code}")
                raise ConversionError(
                    f"Failed to convert image {image}:{tag} (exit code {return_code})"
                    + _tail("\n".join(output_lines))
                )
        else:
            subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )

    except subprocess.TimeoutExpired as e:
        logger.error(f"Conversion timed out after {timeout}s")
        raise ConversionError(f"Conversion of {image}:{tag} timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        error_msg = e.stderr.decode(errors="replace") if e.stderr else ""
        logger.error(f"Conversion failed: {error_msg.strip()}")
        raise ConversionError(
            f"Failed to convert image {image}:{tag} (exit code {e.returncode})" + _tail(error_msg)
        ) from e
    except OSError as e:
        logger.error(f"Could not start {command}: {e}")
        raise ConversionError(f"Could not start {command}: {e}") from e

    logger.info(f"Conversion complete: {destination}")
