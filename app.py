from __future__ import annotations

import numpy as np
import streamlit as st
from matplotlib import pyplot as plt

from upwind import (
    GridContext,
    UpwindStencil,
    dot_test,
    gradient_velocity_traveltime,
)


st.set_page_config(page_title="Апвинд-стенсил — интерактивное объяснение", layout="wide")
st.title("Причинный апвинд-стенсил по полю времён")
st.markdown(
    """
    Поле времён первых вступлений задаёт **причинный порядок** узлов сетки:
    узел обрабатывается только после соседей с меньшим временем. На этом
    порядке строится стенсил направленной производной вдоль градиента времени
    и четыре согласованных оператора: разность, сопряжённая к ней,
    треугольное решение и сопряжённое к решению.
    """
)

DEFAULT_NX = 61
DEFAULT_NZ = 31
DEFAULT_SEED = 7

sidebar = st.sidebar
sidebar.header("Сетка")
nx = sidebar.slider("Узлов по x", 5, 151, DEFAULT_NX, step=2)
nz = sidebar.slider("Узлов по z", 5, 101, DEFAULT_NZ, step=2)
dx = sidebar.number_input("Шаг по x (м)", value=10.0, min_value=0.5)
dz = sidebar.number_input("Шаг по z (м)", value=10.0, min_value=0.5)

sidebar.header("Источник и скорость")
src_x = sidebar.slider("Источник x (м)", 0.0, (nx - 1) * dx, 0.5 * (nx - 1) * dx)
src_z = sidebar.slider("Источник z (м)", 0.0, (nz - 1) * dz, 0.0)
v0 = sidebar.number_input("v₀ на поверхности (м/с)", value=1800.0, min_value=100.0)
gz = sidebar.number_input("Вертикальный градиент g_z (м/с на м)", value=0.6)
rhs_value = sidebar.slider("Правая часть для решения", 0.0, 5.0, 1.0, step=0.1)
seed = int(sidebar.number_input("Сид dot-теста", value=DEFAULT_SEED, step=1))

try:
    grid = GridContext((nx, nz), (dx, dz))
    traveltime = gradient_velocity_traveltime(grid, (src_x, src_z), v0=v0, gradient=gz)
except ValueError as exc:
    st.error(f"Некорректные параметры: {exc}")
    st.stop()

extent = [0.0, (nx - 1) * dx, (nz - 1) * dz, 0.0]

with UpwindStencil(grid).build(traveltime) as stencil:
    rank = stencil.rank.reshape(grid.shape)
    diagonal = np.zeros(grid.node_count)
    diagonal[stencil.order] = stencil.diagonal
    diagonal = diagonal.reshape(grid.shape)
    solution = stencil.solve(np.full(grid.node_count, rhs_value)).reshape(grid.shape)
    residual = stencil.forw(solution) - rhs_value
    residual[stencil.order[stencil.degenerate]] = 0.0

    rng = np.random.default_rng(seed)
    forw_pair = dot_test(stencil.forw, stencil.adj, grid.node_count, rng=rng)
    solve_pair = dot_test(stencil.solve, stencil.inverse, grid.node_count, rng=rng)
    n_degenerate = int(np.count_nonzero(stencil.degenerate))

col_left, col_right = st.columns(2)

with col_left:
    st.subheader("Поле времён и причинный порядок")
    fig, axes = plt.subplots(2, 1, figsize=(6, 7))
    im = axes[0].imshow(traveltime, extent=extent, aspect="auto", cmap="viridis")
    axes[0].contour(
        np.linspace(0.0, extent[1], nx),
        np.linspace(0.0, extent[2], nz),
        traveltime,
        levels=12,
        colors="white",
        linewidths=0.6,
    )
    axes[0].plot(src_x, src_z, "r*", markersize=12)
    axes[0].set_title("Время первого вступления (с)")
    fig.colorbar(im, ax=axes[0])
    im = axes[1].imshow(rank, extent=extent, aspect="auto", cmap="magma")
    axes[1].set_title("Позиция узла в причинном порядке")
    fig.colorbar(im, ax=axes[1])
    for ax in axes:
        ax.set_xlabel("x (м)")
        ax.set_ylabel("z (м)")
    fig.tight_layout()
    st.pyplot(fig)
    plt.close(fig)

with col_right:
    st.subheader("Веса стенсила и треугольное решение")
    fig, axes = plt.subplots(2, 1, figsize=(6, 7))
    im = axes[0].imshow(diagonal, extent=extent, aspect="auto", cmap="cividis")
    axes[0].set_title("Диагональный вес")
    fig.colorbar(im, ax=axes[0])
    im = axes[1].imshow(solution, extent=extent, aspect="auto", cmap="coolwarm")
    axes[1].set_title("solve(rhs = const)")
    fig.colorbar(im, ax=axes[1])
    for ax in axes:
        ax.set_xlabel("x (м)")
        ax.set_ylabel("z (м)")
    fig.tight_layout()
    st.pyplot(fig)
    plt.close(fig)

st.subheader("Проверка операторов")
c1, c2, c3 = st.columns(3)
c1.metric("Вырожденных узлов (источник)", n_degenerate)
c2.metric(
    "dot-тест forw/adj",
    f"{forw_pair[0]:.6e}",
    delta=f"{forw_pair[0] - forw_pair[1]:.1e}",
    delta_color="off",
)
c3.metric(
    "dot-тест solve/inverse",
    f"{solve_pair[0]:.6e}",
    delta=f"{solve_pair[0] - solve_pair[1]:.1e}",
    delta_color="off",
)
st.caption(
    f"max |forw(solve(rhs)) − rhs| вне источника: {np.max(np.abs(residual)):.2e}"
)

with st.expander("Почему узлы на «плато» не получают веса?"):
    st.markdown(
        """
        Сосед считается причинным только при **строго** меньшем времени.
        Если время соседа точно равно времени узла, ось не даёт вклада —
        это исключает нулевые веса в знаменателе, но на идеально плоских
        участках поле может оказаться недовзвешенным.
        """
    )
