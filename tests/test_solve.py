import pandas as pd

from vhevo.solve import build_parser, load_params, main


def _args(tmp_path, *extra):
    return ["--n-parasites", "3", "--n-introductions", "2", "--window-length", "10",
            "--seed", "1", "--out-dir", str(tmp_path), "--no-progress", *extra]


class TestSolve:
    """Command-line driver."""

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.scenario == "fig2"
        assert args.n_parasites == 100
        assert args.window_length == 1000.0
        assert args.rtol == 1e-3

    def test_contact_rate_override(self):
        args = build_parser().parse_args(["--scenario", "fig3", "--n-parasites", "4",
                                          "--seed", "0", "--contact-rate", "2.0"])
        params = load_params(args)
        assert params.c == 2.0
        assert params.n_parasites == 4

    def test_writes_tables(self, tmp_path, capsys):
        assert main(_args(tmp_path, "--no-plots")) == 0
        population = pd.read_csv(tmp_path / "population.csv")
        summary = pd.read_csv(tmp_path / "summary.csv")
        traits = pd.read_csv(tmp_path / "traits.csv")
        assert len(population) == 21
        assert list(population.columns[:5]) == ["Time", "X", "Y_1", "Y_2", "Y_3"]
        assert len(summary) == 21
        assert len(traits) == 3
        assert "Saved results" in capsys.readouterr().out

    def test_writes_figures(self, tmp_path):
        assert main(_args(tmp_path, "--scenario", "fig1")) == 0
        assert (tmp_path / "graph_population.png").exists()
        assert (tmp_path / "graph_evenness.png").exists()

    def test_params_csv(self, tmp_path, two_strain_params):
        csv = tmp_path / "in.csv"
        two_strain_params.to_frame().to_csv(csv)
        out = tmp_path / "out"
        assert main(["--params-csv", str(csv), "--window-length", "10", "--out-dir", str(out),
                     "--no-progress", "--no-plots"]) == 0
        assert len(pd.read_csv(out / "population.csv")) == 21

    def test_failure_exit_status(self, tmp_path):
        # a single slot cannot take a second strain
        code = main(["--n-parasites", "1", "--n-introductions", "2", "--window-length", "10",
                     "--seed", "1", "--out-dir", str(tmp_path), "--no-progress", "--no-plots"])
        assert code == 1
        assert not (tmp_path / "population.csv").exists()

    def test_zero_introductions_is_rejected(self, tmp_path, caplog):
        args = ["--n-parasites", "3", "--n-introductions", "0", "--window-length", "10",
                "--seed", "1", "--out-dir", str(tmp_path), "--no-progress", "--no-plots"]
        assert main(args) == 1
        assert not (tmp_path / "population.csv").exists()
        assert "Simulation failed" in caplog.text
