# # Copyright (c) 2024 LDAP Query Client
# # SPDX-License-Identifier: MIT
# #
# # LDAP Query Client
# # One-shot LDAPv3 directory search over STARTTLS

"""End-to-end tests for the query workflow against a mocked directory."""

import io
import json
from pathlib import Path
from tempfile import NamedTemporaryFile
from unittest.mock import Mock, patch

import pytest
from ldap3.core.exceptions import LDAPException, LDAPStartTLSError

from ldap_query_client.cli import main
from ldap_query_client.client import EXIT_FAILURE, EXIT_SUCCESS, format_entry, run
from ldap_query_client.config.models import Config, DirectoryConfig
from ldap_query_client.core.directory import DirectoryEntry

SUCCESS = {"result": 0, "description": "success", "message": "", "type": "searchResDone"}

TWO_ENTRIES = [
    {
        "type": "searchResEntry",
        "dn": "uid=if19b001,ou=people,dc=technikum-wien,dc=at",
        "raw_attributes": {"uid": [b"if19b001"], "cn": [b"Alice Example"]},
    },
    {
        "type": "searchResEntry",
        "dn": "uid=if19b002,ou=people,dc=technikum-wien,dc=at",
        "raw_attributes": {"uid": [b"if19b002"], "cn": [b"Bob Example"]},
    },
]


class TestRun:
    """Test the workflow with a mocked ldap3 connection."""

    def setup_method(self):
        """Set up test fixtures."""
        self.connection = Mock()
        self.connection.start_tls.return_value = True
        self.connection.bind.return_value = True
        self.connection.result = dict(SUCCESS)
        self.connection.response = []

        self.server_patcher = patch("ldap_query_client.core.directory.Server")
        self.connection_patcher = patch(
            "ldap_query_client.core.directory.Connection", return_value=self.connection
        )
        self.mock_server = self.server_patcher.start()
        self.mock_connection = self.connection_patcher.start()

        self.config = Config()
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()

    def teardown_method(self):
        """Stop patchers."""
        self.connection_patcher.stop()
        self.server_patcher.stop()

    def run_client(self, environ=None):
        return run(self.config, environ or {}, self.stdout, self.stderr)

    def stderr_lines(self):
        return self.stderr.getvalue().splitlines()

    def test_anonymous_two_entries(self):
        """Test the anonymous scenario prints both entry blocks after the count."""
        self.connection.response = list(TWO_ENTRIES)

        status = self.run_client()

        assert status == EXIT_SUCCESS
        assert self.stdout.getvalue() == (
            "(user not found... set to empty string)\n"
            "(pw not found... set to empty string)\n"
            "connected to LDAP server ldap://ldap.technikum-wien.at:389\n"
            "Total results: 2\n"
            "DN: uid=if19b001,ou=people,dc=technikum-wien,dc=at\n"
            "\tuid: if19b001\n"
            "\tcn: Alice Example\n"
            "\n"
            "DN: uid=if19b002,ou=people,dc=technikum-wien,dc=at\n"
            "\tuid: if19b002\n"
            "\tcn: Bob Example\n"
            "\n"
        )
        assert self.stderr.getvalue() == ""
        assert self.mock_connection.call_args[1]["authentication"] == "ANONYMOUS"
        self.connection.start_tls.assert_called_once()
        self.connection.bind.assert_called_once()
        self.connection.unbind.assert_called_once()

    def test_authenticated_run(self):
        """Test a run with both environment variables set prints no notices."""
        status = self.run_client({"ldapuser": "if19b001", "ldappw": "secret"})

        assert status == EXIT_SUCCESS
        assert "not found" not in self.stdout.getvalue()
        call_kwargs = self.mock_connection.call_args[1]
        assert call_kwargs["user"] == "uid=if19b001,ou=people,dc=technikum-wien,dc=at"
        assert call_kwargs["password"] == "secret"

    def test_password_without_identity(self):
        """Test a password with no identity fails the bind instead of going anonymous."""
        status = self.run_client({"ldappw": "s3cret"})

        assert status == EXIT_FAILURE
        assert self.stdout.getvalue() == (
            "(user not found... set to empty string)\n"
            "connected to LDAP server ldap://ldap.technikum-wien.at:389\n"
        )
        assert self.stderr_lines() == ["LDAP bind error: password given without a bind DN"]
        self.connection.bind.assert_not_called()
        self.connection.search.assert_not_called()
        self.connection.unbind.assert_called_once()

    def test_identity_without_password(self):
        """Test an identity with no password sends an unauthenticated bind."""
        status = self.run_client({"ldapuser": "if19b001"})

        assert status == EXIT_SUCCESS
        assert "(pw not found... set to empty string)\n" in self.stdout.getvalue()
        call_kwargs = self.mock_connection.call_args[1]
        assert call_kwargs["authentication"] == "ANONYMOUS"
        assert call_kwargs["user"] == "uid=if19b001,ou=people,dc=technikum-wien,dc=at"
        self.connection.bind.assert_called_once()

    def test_zero_entries(self):
        """Test an empty result still succeeds."""
        status = self.run_client()

        assert status == EXIT_SUCCESS
        output = self.stdout.getvalue()
        assert "Total results: 0\n" in output
        assert "DN:" not in output
        self.connection.unbind.assert_called_once()

    def test_start_tls_failure(self):
        """Test a failed handshake stops before the search."""
        self.connection.start_tls.side_effect = LDAPStartTLSError("certificate verify failed")

        status = self.run_client()

        assert status == EXIT_FAILURE
        assert self.stderr_lines() == ["ldap_start_tls_s(): certificate verify failed"]
        assert "Total results" not in self.stdout.getvalue()
        self.connection.bind.assert_not_called()
        self.connection.search.assert_not_called()
        self.connection.unbind.assert_called_once()

    def test_connection_init_failure(self):
        """Test no teardown is attempted when the handle was never created."""
        self.mock_server.side_effect = LDAPException("invalid server address")

        status = self.run_client()

        assert status == EXIT_FAILURE
        assert self.stderr_lines() == ["ldap_init failed"]
        assert "connected to LDAP server" not in self.stdout.getvalue()
        self.mock_connection.assert_not_called()
        self.connection.unbind.assert_not_called()

    def test_option_failure(self):
        """Test an unsupported protocol version."""
        self.config = Config(directory=DirectoryConfig(protocol_version=4))

        status = self.run_client()

        assert status == EXIT_FAILURE
        lines = self.stderr_lines()
        assert len(lines) == 1
        assert lines[0].startswith("ldap_set_option(PROTOCOL_VERSION): ")
        self.connection.open.assert_not_called()
        self.connection.unbind.assert_called_once()

    def test_bind_failure(self):
        """Test a rejected bind."""
        self.connection.bind.return_value = False
        self.connection.result = {"result": 49, "description": "invalidCredentials", "message": ""}

        status = self.run_client({"ldapuser": "if19b001", "ldappw": "wrong"})

        assert status == EXIT_FAILURE
        assert self.stderr_lines() == ["LDAP bind error: invalidCredentials"]
        self.connection.search.assert_not_called()
        self.connection.unbind.assert_called_once()

    def test_search_failure(self):
        """Test a failed search prints no count."""

        def failing_search(**kwargs):
            self.connection.result = {
                "result": 50,
                "description": "insufficientAccessRights",
                "message": "",
            }
            return False

        self.connection.search.side_effect = failing_search

        status = self.run_client()

        assert status == EXIT_FAILURE
        assert self.stderr_lines() == ["LDAP search error: insufficientAccessRights"]
        assert "Total results" not in self.stdout.getvalue()
        self.connection.unbind.assert_called_once()

    @pytest.mark.parametrize(
        "stage",
        ["open", "start_tls", "bind", "search"],
    )
    def test_every_failure_releases_once(self, stage):
        """Test each failing stage prints one line and unbinds at most once."""
        if stage == "open":
            self.mock_server.side_effect = LDAPException("boom")
        else:
            getattr(self.connection, stage).side_effect = LDAPException("boom")

        status = self.run_client()

        assert status == EXIT_FAILURE
        assert len(self.stderr_lines()) == 1
        expected_unbinds = 0 if stage == "open" else 1
        assert self.connection.unbind.call_count == expected_unbinds

    def test_binary_value_is_printed(self):
        """Test binary values are rendered without failing the run."""
        self.connection.response = [
            {
                "type": "searchResEntry",
                "dn": "uid=x,dc=test",
                "raw_attributes": {"jpegPhoto": [b"\xff\xd8\xff"]},
            }
        ]

        status = self.run_client()

        assert status == EXIT_SUCCESS
        assert "\tjpegPhoto: " + "\ufffd" * 3 + "\n" in self.stdout.getvalue()


class TestFormatEntry:
    """Test entry rendering."""

    def test_multi_valued_attribute(self):
        """Test each value gets its own line."""
        entry = DirectoryEntry(
            dn="uid=jdoe,dc=example,dc=com",
            attributes={"cn": [b"John Doe", b"Johnny"], "uid": [b"jdoe"]},
        )

        assert format_entry(entry) == (
            "DN: uid=jdoe,dc=example,dc=com\n"
            "\tcn: John Doe\n"
            "\tcn: Johnny\n"
            "\tuid: jdoe\n"
            "\n"
        )

    def test_entry_without_attributes(self):
        """Test an entry with no attributes prints only its DN."""
        assert format_entry(DirectoryEntry(dn="dc=example,dc=com")) == "DN: dc=example,dc=com\n\n"


class TestMain:
    """Test the console entry point."""

    @patch("ldap_query_client.cli.run")
    def test_main_runs_with_loaded_config(self, mock_run, monkeypatch):
        """Test main loads configuration and returns the run status."""
        monkeypatch.delenv("LDAPQUERY_CONFIG", raising=False)
        monkeypatch.delenv("LDAPQUERY_LOG_LEVEL", raising=False)
        mock_run.return_value = EXIT_SUCCESS

        assert main() == EXIT_SUCCESS

        config = mock_run.call_args[0][0]
        assert config.search.size_limit == 500

    @patch("ldap_query_client.cli.run")
    def test_main_uses_config_file(self, mock_run, monkeypatch):
        """Test LDAPQUERY_CONFIG reaches the workflow."""
        with NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump({"search": {"base_dn": "dc=example,dc=com"}}, f)
            config_path = f.name

        try:
            monkeypatch.setenv("LDAPQUERY_CONFIG", config_path)
            mock_run.return_value = EXIT_FAILURE

            assert main() == EXIT_FAILURE
            assert mock_run.call_args[0][0].search.base_dn == "dc=example,dc=com"
        finally:
            Path(config_path).unlink()

    @patch("ldap_query_client.cli.run")
    def test_main_configuration_error(self, mock_run, monkeypatch, capsys):
        """Test an unreadable configuration exits with one diagnostic line."""
        monkeypatch.setenv("LDAPQUERY_CONFIG", "/nonexistent/config.json")

        assert main() == EXIT_FAILURE

        captured = capsys.readouterr()
        assert captured.err.startswith("configuration error: Configuration file not found")
        mock_run.assert_not_called()
