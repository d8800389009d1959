"""
Tests for estimator options, validation and option I/O.
"""

import argparse
import json

import pytest
from numpy.testing import assert_allclose

from polish_solver.core.constants import DEFAULTS
from polish_solver.core.parameters import (
    EstimatorOptions,
    ValidationIssue,
    ConfigurationError,
    validate_options,
    add_arguments,
    options_from_args,
    bfactor_options_from_args,
    save_options_to_json,
    load_options_from_json,
)
from polish_solver.alignment.interfaces import ObservationModel


BOX = 100


@pytest.mark.unit
class TestValidation:
    """Test validate_options()."""

    def test_cutoff_in_both_units(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=10.0, k_cutoff_angst=20.0)
        result = validate_options(options, obs_model, BOX)
        assert not result.ok
        assert ValidationIssue.BOTH_CUTOFF_UNITS in result.issues
        assert ValidationIssue.MISSING_CUTOFF not in result.issues

    def test_eval_in_both_units(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=10.0,
                                   k_eval=12.0, k_eval_angst=8.0)
        result = validate_options(options, obs_model, BOX)
        assert result.issues == [ValidationIssue.BOTH_EVAL_UNITS]

    def test_missing_cutoff(self, obs_model):
        options = EstimatorOptions(estimate_three=True)
        result = validate_options(options, obs_model, BOX)
        assert result.issues == [ValidationIssue.MISSING_CUTOFF]

    def test_missing_cutoff_ignored_without_estimation(self, obs_model):
        """Test that nothing is required when no estimation was requested."""
        result = validate_options(EstimatorOptions(), obs_model, BOX)
        assert result.ok

    def test_both_modes(self, obs_model):
        options = EstimatorOptions(estimate_two=True, estimate_three=True, k_cutoff=10.0)
        result = validate_options(options, obs_model, BOX)
        assert result.issues == [ValidationIssue.BOTH_MODES]

    def test_solver_not_ready(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=10.0)
        result = validate_options(options, obs_model, BOX, solver_ready=False)
        assert result.issues == [ValidationIssue.SOLVER_NOT_READY]

    def test_angstrom_without_pixel_size(self):
        options = EstimatorOptions(estimate_two=True, k_cutoff_angst=20.0)
        result = validate_options(options)
        assert result.issues == [ValidationIssue.NO_PIXEL_SIZE]

    def test_cutoff_from_angstrom(self, obs_model):
        """Test the Angstrom to pixel conversion of the cutoff."""
        options = EstimatorOptions(estimate_two=True, k_cutoff_angst=10.0)
        result = validate_options(options, obs_model, BOX)
        assert result.ok
        # s · angpix / A = 100 · 1.5 / 10
        assert_allclose(result.k_cutoff, 15.0)
        assert_allclose(result.k_cutoff_angst, 10.0)

    def test_eval_defaults_to_cutoff(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=30.0)
        result = validate_options(options, obs_model, BOX)
        assert_allclose(result.k_cutoff_angst, 5.0)
        assert_allclose(result.k_eval, 30.0)
        assert_allclose(result.k_eval_angst, 5.0)

    def test_eval_from_angstrom(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=10.0, k_eval_angst=6.0)
        result = validate_options(options, obs_model, BOX)
        assert_allclose(result.k_eval, 25.0)
        assert_allclose(result.k_eval_angst, 6.0)

    def test_eval_from_pixels(self, obs_model):
        options = EstimatorOptions(estimate_two=True, k_cutoff=10.0, k_eval=20.0)
        result = validate_options(options, obs_model, BOX)
        assert_allclose(result.k_eval, 20.0)
        assert_allclose(result.k_eval_angst, 7.5)

    def test_raise_if_invalid(self, obs_model):
        """Test that every issue ends up in the exception."""
        options = EstimatorOptions(estimate_two=True, estimate_three=True,
                                   k_cutoff=10.0, k_cutoff_angst=20.0)
        result = validate_options(options, obs_model, BOX)
        with pytest.raises(ConfigurationError) as excinfo:
            result.raise_if_invalid()
        assert set(excinfo.value.issues) == {
            ValidationIssue.BOTH_CUTOFF_UNITS, ValidationIssue.BOTH_MODES}
        assert "--k_cut_A" in str(excinfo.value)

    def test_valid_result_does_not_raise(self, obs_model):
        validate_options(EstimatorOptions(), obs_model, BOX).raise_if_invalid()


@pytest.mark.unit
class TestObservationModel:

    def test_conversions(self):
        model = ObservationModel(pixel_size=1.25)
        assert_allclose(model.ang_to_pix(5.0, 64), 16.0)
        assert_allclose(model.pix_to_ang(16.0, 64), 5.0)
        assert model.get_pixel_size() == 1.25

    def test_invalid_pixel_size(self):
        with pytest.raises(ValueError):
            ObservationModel(pixel_size=0.0)


@pytest.mark.unit
class TestOptionIO:
    """Test argparse and JSON option handling."""

    @pytest.fixture
    def parser(self):
        parser = argparse.ArgumentParser()
        add_arguments(parser)
        return parser

    def test_defaults(self, parser):
        options = options_from_args(parser.parse_args([]))
        assert options == EstimatorOptions()
        assert not options.anything_to_do
        assert options.min_particles == DEFAULTS["min_particles"]
        assert options.seed == 23

    def test_command_line(self, parser):
        args = parser.parse_args([
            "--params3", "--k_cut", "12", "--k_eval_A", "4.5", "--min_p", "500",
            "--s_vel_0", "0.4", "--s_div_0", "2000", "--s_acc_0", "-1",
            "--in_step", "50", "--conv", "5", "--par_iters", "80",
            "--mot_range", "30", "--seed", "7",
        ])
        options = options_from_args(args)
        assert options.estimate_three and not options.estimate_two
        assert options.anything_to_do
        assert options.k_cutoff == 12.0
        assert options.k_eval_angst == 4.5
        assert options.min_particles == 500
        assert options.sig_vel == 0.4
        assert options.sig_div == 2000.0
        assert options.sig_acc == -1.0
        assert options.initial_step == 50.0
        assert options.conv == 5.0
        assert options.max_iters == 80
        assert options.max_range == 30
        assert options.seed == 7

    def test_bfactor_arguments(self, parser):
        args = parser.parse_args(["--bfac_per_mg", "--bfac_min_B", "-10",
                                  "--bfac_max_B", "200", "--bfac_min_scale", "0.3",
                                  "--kmin_bfac", "20"])
        options = bfactor_options_from_args(args)
        assert options.per_micrograph
        assert options.min_B == -10.0
        assert options.max_B == 200.0
        assert options.min_scale == 0.3
        assert options.kmin == 20.0

    def test_json_roundtrip(self, tmp_path):
        options = EstimatorOptions(estimate_two=True, k_cutoff_angst=18.0, seed=5)
        path = tmp_path / "options.json"
        save_options_to_json(options, path)
        assert load_options_from_json(path) == options

    def test_json_unknown_keys(self, tmp_path):
        """Test that unknown keys are ignored and missing keys default."""
        path = tmp_path / "options.json"
        path.write_text(json.dumps({"conv": 2.5, "plot_dir": "plots"}))
        options = load_options_from_json(path)
        assert options.conv == 2.5
        assert options.max_iters == DEFAULTS["max_iters"]
