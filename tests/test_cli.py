"""
Tests for the command line interface.
"""

from click.testing import CliRunner

from coupler.cli import main


class TestCli:
    """Test send/receive through files."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_send_then_receive(self, tmp_path):
        """Test sending to a file and receiving it back."""
        output = tmp_path / "greeting"
        result = self.runner.invoke(main, ["send", "hello there", "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "greeting.wav").exists()

        result = self.runner.invoke(main, ["receive", "-i", str(tmp_path / "greeting.wav")])
        assert result.exit_code == 0, result.output
        assert "hello there" in result.output

    def test_qfsk(self, tmp_path):
        """Test QFSK at a lower baud rate on both sides."""
        path = tmp_path / "q.wav"
        args = ["--scheme", "qfsk", "-b", "150"]
        result = self.runner.invoke(main, ["send", "quad", "-o", str(path)] + args)
        assert result.exit_code == 0, result.output

        result = self.runner.invoke(main, ["receive", "-i", str(path)] + args)
        assert result.exit_code == 0, result.output
        assert "quad" in result.output

    def test_verbose_send(self, tmp_path):
        """Test verbose send output."""
        result = self.runner.invoke(main, ["send", "hi", "-o", str(tmp_path / "hi.wav"), "-v"])
        assert result.exit_code == 0, result.output
        assert "64 framed bits" in result.output

    def test_receive_nothing(self, tmp_path):
        """Test that a file with no decodable frame exits with status 1."""
        path = tmp_path / "bare.wav"
        result = self.runner.invoke(main, ["send", "x", "-o", str(path), "--carrier", "1000"])
        assert result.exit_code == 0, result.output

        # Different tones: the call is never recognised as data
        result = self.runner.invoke(main, ["receive", "-i", str(path)])
        assert result.exit_code == 1

    def test_invalid_settings(self, tmp_path):
        """Test that invalid modem settings exit with status 2."""
        result = self.runner.invoke(
            main, ["send", "x", "-o", str(tmp_path / "x.wav"), "--carrier", "20000"]
        )
        assert result.exit_code == 2

    def test_missing_input(self, tmp_path):
        """Test that a missing input file is rejected."""
        result = self.runner.invoke(main, ["receive", "-i", str(tmp_path / "nope.wav")])
        assert result.exit_code != 0
