"""
Build failure analysis (pure).

Parses output from failed configure/compile/install steps for
known error patterns and suggests remediation. No I/O, no subprocess.
"""

from __future__ import annotations

import re


def parse_build_progress(output: str) -> dict:
    """Parse make/cmake output for the last reported percentage.

    Returns:
        ``{"percent": 0-100}`` or empty dict if no progress detected.
    """
    if not output:
        return {}
    matches = re.findall(r"\[\s*(\d+)%\]", output)
    if matches:
        return {"percent": int(matches[-1])}
    return {}


def analyse_build_failure(output: str, step_id: str = "") -> dict | None:
    """Analyse a failed step's output for common causes.

    Args:
        output: stderr (and optionally stdout) of the failed step.
        step_id: Recipe step id, used for step-specific hints.

    Returns:
        ``{"cause": "...", "suggestion": "...", "confidence": "high|medium|low"}``
        or None if the error is unrecognized.
    """
    s = (output or "").lower()

    if step_id == "make-uninstall" and (
        "no rule to make target" in s or "install_manifest" in s
    ):
        return {
            "cause": "No previous SDK installation to uninstall",
            "suggestion": "Add 'make-uninstall' to allow_failure in provision.yml "
                          "when provisioning a fresh host",
            "confidence": "high",
        }

    if not s:
        return None

    if "fatal error:" in s and ".h" in s:
        m = re.search(r"fatal error:\s*(\S+\.h):\s*no such file", s)
        header = m.group(1) if m else "unknown"
        return {
            "cause": f"Missing header file: {header}",
            "suggestion": "Install the matching -dev package and add it to "
                          "extra_packages in provision.yml",
            "confidence": "high",
        }

    if "cannot find -l" in s:
        m = re.search(r"cannot find -l(\S+)", s)
        lib = m.group(1) if m else "unknown"
        return {
            "cause": f"Missing library: lib{lib}",
            "suggestion": f"Install lib{lib}-dev",
            "confidence": "high",
        }

    if ("internal compiler error" in s and ("killed" in s or "virtual memory" in s)) or (
        "signal 9" in s
    ):
        return {
            "cause": "Out of memory during compilation",
            "suggestion": "Reduce parallel jobs: set jobs: 1 or 2 in provision.yml",
            "confidence": "medium",
        }

    if "could not find" in s and ("package" in s or "cmake" in s):
        m = re.search(r"provided by\s+\"?([\w.+-]+)", s) or re.search(r"could not find\s+([\w.+-]+)", s)
        pkg = m.group(1) if m else "a required package"
        return {
            "cause": f"CMake package not found: {pkg}",
            "suggestion": f"Install the development package for {pkg} or set CMAKE_PREFIX_PATH",
            "confidence": "medium",
        }

    if "cc: not found" in s or "g++: not found" in s or "no cmake_cxx_compiler could be found" in s:
        return {
            "cause": "C/C++ compiler not found",
            "suggestion": "Install build-essential: apt-get install -y build-essential",
            "confidence": "high",
        }

    if "could not resolve host" in s or "temporary failure resolving" in s:
        return {
            "cause": "Network unavailable",
            "suggestion": "Check DNS and outbound access to the package mirrors and github.com",
            "confidence": "high",
        }

    if "permission denied" in s:
        return {
            "cause": "Permission denied",
            "suggestion": "The step may need sudo, or the directory permissions need fixing",
            "confidence": "medium",
        }

    return None
