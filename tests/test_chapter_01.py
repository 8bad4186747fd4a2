import pytest

from mbml.config import MurderMysteryConfig
from mbml.chapter_01.murder import MurderMystery


def close_enough(x, y, r=4):
    return round(x, r) == round(y, r)


@pytest.fixture
def mystery():
    return MurderMystery()


class TestMurderMystery():

    def test_prior(self, mystery):
        posterior = mystery.posterior()
        assert close_enough(posterior["Grey"], 0.3)
        assert close_enough(posterior["Auburn"], 0.7)

    def test_after_revolver(self, mystery):
        posterior = mystery.posterior(weapon=0)
        assert close_enough(posterior["Grey"], 0.6585)
        assert close_enough(posterior.sum(), 1.0)

    def test_after_revolver_and_hair(self, mystery):
        assert close_enough(mystery.posterior(weapon=0, hair=True)["Grey"], 0.9508)

    def test_progression(self, mystery):
        table = mystery.progression()
        grey = table.loc["Grey"]
        assert grey["Prior"] < grey["After weapon"] < grey["After hair"]

    def test_joint_sums_to_one(self, mystery):
        assert close_enough(mystery.joint_murderer_weapon().values.sum(), 1.0)
        assert close_enough(mystery.joint_murderer_hair(weapon=0).values.sum(), 1.0)

    def test_prior_must_sum_to_one(self):
        with pytest.raises(ValueError):
            MurderMystery(MurderMysteryConfig(PRIOR_GREY=0.5, PRIOR_AUBURN=0.7))
