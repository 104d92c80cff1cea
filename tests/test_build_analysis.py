"""
Tests for build failure analysis.
"""

import pytest

from rsprovision.core.services.build_analysis import analyse_build_failure, parse_build_progress


class TestParseBuildProgress:
    def test_last_percentage(self):
        out = "[  5%] Building CXX\n[ 42%] Building CXX\n[ 43%] Linking"
        assert parse_build_progress(out) == {"percent": 43}

    def test_no_progress(self):
        assert parse_build_progress("") == {}
        assert parse_build_progress("configuring") == {}


class TestAnalyseBuildFailure:
    def test_uninstall_on_fresh_host(self):
        result = analyse_build_failure(
            "make: *** No rule to make target 'uninstall'.  Stop.", step_id="make-uninstall"
        )
        assert result["confidence"] == "high"
        assert "make-uninstall" in result["suggestion"]

    def test_uninstall_hint_only_for_that_step(self):
        assert analyse_build_failure("No rule to make target 'x'", step_id="make-build") is None

    def test_missing_header(self):
        result = analyse_build_failure(
            "fatal error: libusb.h: No such file or directory", step_id="make-build"
        )
        assert "libusb.h" in result["cause"]

    def test_missing_library(self):
        result = analyse_build_failure("/usr/bin/ld: cannot find -lssl")
        assert result["cause"] == "Missing library: libssl"

    def test_oom(self):
        result = analyse_build_failure("c++: fatal error: Killed signal terminated program cc1plus (signal 9)")
        assert "memory" in result["cause"].lower()
        assert "jobs" in result["suggestion"]

    def test_cmake_package(self):
        result = analyse_build_failure("Could NOT find OpenSSL package (missing: OPENSSL_LIBRARIES)")
        assert result["cause"] == "CMake package not found: openssl"

    @pytest.mark.parametrize("text,cause", [
        ("Could not resolve host: github.com", "Network unavailable"),
        ("E: Could not open lock file - open (13: Permission denied)", "Permission denied"),
        ("No CMAKE_CXX_COMPILER could be found.", "C/C++ compiler not found"),
    ])
    def test_other_causes(self, text, cause):
        assert analyse_build_failure(text)["cause"] == cause

    def test_unrecognized(self):
        assert analyse_build_failure("something odd happened") is None
        assert analyse_build_failure("") is None
