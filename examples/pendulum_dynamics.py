# %%

import logging

import numpy as np

from gpdynamics import MeanFunctionModel, RegressionEnsemble, Transition

logging.basicConfig(level=logging.INFO)


# Set up toy data: random rollouts of a damped pendulum driven by torque
def pendulum_delta(state, action, dt=0.05):
    theta, omega = state
    d_omega = dt * (-9.81 * np.sin(theta) - 0.2 * omega + action[0])
    return np.array([dt * (omega + d_omega), d_omega])


rng = np.random.default_rng(42)
transitions = []
for episode in range(4):
    state = rng.uniform(-0.5, 0.5, size=2)
    for step in range(20):
        action = rng.uniform(-2.0, 2.0, size=1)
        delta = pendulum_delta(state, action)
        transitions.append(Transition(state=state, action=action, target=delta))
        state = state + delta

# %%

ensemble = RegressionEnsemble(noise=1e-4, snapshot_path="pendulum_data.bin")
ensemble.learn(transitions)

query_state, query_action = np.array([0.3, -0.2]), np.array([1.0])
mean, variance = ensemble.predict_full(np.concatenate([query_state, query_action]))
print(f"True delta:      {pendulum_delta(query_state, query_action)}")
print(f"Predicted delta: {mean} (variance {variance})")
print(f"Input limits:    {ensemble.limits}")

ensemble.save("pendulum_data.txt")

# %%

baseline = MeanFunctionModel(mean_function="linear")
baseline.learn(transitions)
mean, _ = baseline.predict(np.concatenate([query_state, query_action]))
print(f"Linear baseline: {mean}")
