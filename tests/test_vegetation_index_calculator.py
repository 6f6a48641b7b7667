"""
植被指数与比辐射率计算器测试

测试 VegetationIndexCalculator 类的所有方法，包括：
- NDVI 计算
- 植被覆盖度 (FV) 计算
- 地表比辐射率 (EM) 计算
- 基于日合成影像的比辐射率估算
"""

import pytest
import numpy as np
import xarray as xr

from conftest import make_image
from lst_pipeline.services.errors import DegenerateStatisticsError
from lst_pipeline.services.vegetation_index_calculator import VegetationIndexCalculator


class TestVegetationIndexCalculator:
    """测试植被指数计算器"""

    @pytest.fixture
    def calculator(self):
        """创建计算器实例"""
        return VegetationIndexCalculator()

    # NDVI 测试
    def test_ndvi_calculation_known_values(self, calculator):
        """测试 NDVI 计算的已知参考值"""
        nir = np.array([0.5, 0.6, 0.7])
        red = np.array([0.2, 0.3, 0.4])
        expected = np.array([0.42857143, 0.33333333, 0.27272727])

        result = calculator.calculate_ndvi(nir, red)

        np.testing.assert_array_almost_equal(result, expected, decimal=6)

    def test_ndvi_zero_denominator(self, calculator):
        """测试 NDVI 在分母为零时的处理"""
        nir = np.array([0.0, 0.1, 0.5])
        red = np.array([0.0, -0.1, 0.2])

        result = calculator.calculate_ndvi(nir, red)

        # 前两个值分母为 0，应该返回 0
        assert result[0] == 0
        assert result[1] == 0
        assert result[2] == pytest.approx(0.42857143, rel=1e-6)

    def test_ndvi_negative_values(self, calculator):
        """测试 NDVI 对负值的处理（水体）"""
        nir = np.array([0.1, 0.2])
        red = np.array([0.3, 0.4])

        result = calculator.calculate_ndvi(nir, red)

        assert result[0] < 0
        assert result[1] < 0

    def test_ndvi_nan_propagates(self, calculator):
        """测试被掩膜像素 (NaN) 的 NDVI 仍为 NaN"""
        nir = np.array([np.nan, 0.5])
        red = np.array([0.2, np.nan])

        result = calculator.calculate_ndvi(nir, red)

        assert np.isnan(result).all()

    def test_ndvi_dataarray(self, calculator):
        """测试 DataArray 输入保留坐标"""
        image = make_image({"SR_B5": [[0.5, 0.6], [0.7, 0.0]], "SR_B4": [[0.2, 0.3], [0.4, 0.0]]})

        result = calculator.calculate_ndvi(image["SR_B5"], image["SR_B4"])

        assert isinstance(result, xr.DataArray)
        assert result.name == "NDVI"
        assert result.dims == ("y", "x")
        np.testing.assert_array_equal(result.x.values, image.x.values)
        assert float(result[1, 1]) == 0

    # FV 测试
    def test_fv_bounds(self, calculator):
        """测试 NDVI 等于最小/最大值时 FV 分别为 0 和 1"""
        ndvi = np.array([-0.2, 0.8])

        result = calculator.calculate_fraction_of_vegetation(ndvi, -0.2, 0.8)

        np.testing.assert_array_almost_equal(result, [0.0, 1.0])

    def test_fv_known_value(self, calculator):
        """测试 FV 为归一化 NDVI 的平方"""
        result = calculator.calculate_fraction_of_vegetation(np.array([0.3]), -0.2, 0.8)

        assert result[0] == pytest.approx(0.25)

    def test_fv_monotonic(self, calculator):
        """测试 FV 在 [min, max] 内单调不减"""
        ndvi = np.linspace(-0.1, 0.9, 50)

        result = calculator.calculate_fraction_of_vegetation(ndvi, -0.1, 0.9)

        assert np.all(np.diff(result) >= 0)

    def test_fv_in_unit_interval(self, calculator):
        """测试 FV 的取值范围"""
        rng = np.random.default_rng(42)
        ndvi = rng.uniform(-1, 1, size=(64, 64))

        result = calculator.calculate_fraction_of_vegetation(ndvi, ndvi.min(), ndvi.max())

        assert result.min() >= 0
        assert result.max() <= 1

    def test_fv_nan_propagates(self, calculator):
        result = calculator.calculate_fraction_of_vegetation(np.array([np.nan, 0.5]), 0.0, 1.0)

        assert np.isnan(result[0])
        assert result[1] == pytest.approx(0.25)

    @pytest.mark.parametrize("ndvi_min,ndvi_max", [
        (0.4, 0.4),
        (np.nan, 0.8),
        (-0.2, np.inf),
    ])
    def test_fv_degenerate_statistics(self, calculator, ndvi_min, ndvi_max):
        """测试最小值等于最大值或非有限值时报错"""
        with pytest.raises(DegenerateStatisticsError):
            calculator.calculate_fraction_of_vegetation(np.array([0.4]), ndvi_min, ndvi_max)

    # EM 测试
    def test_emissivity_range(self, calculator):
        """测试 FV 为 0 和 1 时的比辐射率"""
        result = calculator.calculate_emissivity(np.array([0.0, 0.5, 1.0]))

        np.testing.assert_array_almost_equal(result, [0.986, 0.988, 0.990])

    def test_emissivity_nan_propagates(self, calculator):
        result = calculator.calculate_emissivity(np.array([np.nan]))

        assert np.isnan(result[0])

    # 比辐射率估算测试
    def test_estimate_emissivity(self, calculator, austin_aoi):
        """测试由合成影像估算 NDVI / FV / EM"""
        composite = make_image({
            "SR_B5": [[0.5, 0.6], [0.7, np.nan]],
            "SR_B4": [[0.3, 0.2], [0.1, 0.2]],
        })

        result = calculator.estimate_emissivity(composite, austin_aoi)

        ndvi = np.array([[0.25, 0.5], [0.75, np.nan]])
        assert result.attrs["ndvi_min"] == pytest.approx(0.25)
        assert result.attrs["ndvi_max"] == pytest.approx(0.75)
        np.testing.assert_array_almost_equal(result["NDVI"].values, ndvi)
        np.testing.assert_array_almost_equal(
            result["FV"].values, [[0.0, 0.25], [1.0, np.nan]]
        )
        np.testing.assert_array_almost_equal(
            result["EM"].values, [[0.986, 0.987], [0.990, np.nan]]
        )
        assert result.rio.crs.to_epsg() == 4326

    def test_estimate_emissivity_uniform_ndvi(self, calculator, austin_aoi):
        """测试 AOI 内 NDVI 完全一致时报错"""
        composite = make_image({
            "SR_B5": np.full((2, 2), 0.5),
            "SR_B4": np.full((2, 2), 0.1),
        })

        with pytest.raises(DegenerateStatisticsError, match="max equals min"):
            calculator.estimate_emissivity(composite, austin_aoi)

    def test_estimate_emissivity_fully_masked(self, calculator, austin_aoi):
        """测试 AOI 内没有有效像素时报错"""
        composite = make_image({
            "SR_B5": np.full((2, 2), np.nan),
            "SR_B4": np.full((2, 2), np.nan),
        })

        with pytest.raises(DegenerateStatisticsError, match="No valid pixels"):
            calculator.estimate_emissivity(composite, austin_aoi)
