import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from rogue_chinook import genotypes, metadata
from rogue_chinook.classification import SNP1, SNP2

# Six 2020 cohort samples, one 2019 sample outside the cohort.
METADATA_TSV = """\
Sample_ID\tDate\tMethod\tLocation\tDetailed_Location\tTissue_Type\tNotes
R001\t05/01/2020\tAngler\tLower Rogue\tIndian Creek\tfin\t
R002\t05/08/2020\tCreel\tLower Rogue\tHuntley Park\tfin\t
R003\t05/15/2020\tSeine\tEstuary\tJetty\tfin\tsmall
R004\t06/01/2020\tAngler\tLower Rogue\tIndian Creek\tfin\t
R005\t06/20/2020\tCreel Survey\tLower Rogue\tLobster Creek\tfin\t
R006\t07/10/2020\tSeine\tEstuary\tJetty\tfin\t
R007\t09/01/2019\tAngler\tLower Rogue\tIndian Creek\tfin\tprior season
"""

MARKER_INFO_TSV = f"""\
marker\tallele_1\tallele_2\tallele_1_reads\tallele_2_reads
{SNP1.marker}\tT\tA\t5200\t4100
{SNP2.marker}\tC\tT\t3900\t4400
Ots28_11080000\tG\tA\t2500\t2600
Ots01_100\tA\tG\t3000\t1200
"""

CALLS = {
    "R001": ["TT", "CC", "GG", "AA"],
    "R002": ["TA", "CT", "GA", "AG"],
    "R003": ["AA", "TT", "AA", "GG"],
    "R004": ["TT", "CT", "GG", "AA"],
    "R005": ["TA", "00", "GA", "AG"],
    "R006": ["AA", "TT", "AA", "AA"],
    "R007": ["TT", "CC", "GG", "AA"],
    "R999": ["TA", "CT", "GA", "AG"],
}
MARKERS = [SNP1.marker, SNP2.marker, "Ots28_11080000", "Ots01_100"]

POSITIONS_TSV = f"""\
Marker\tChromosome\tPosition
{SNP1.marker}\tOts28\t11073102
{SNP2.marker}\tOts28\t11077127
Ots28_11080000\tOts28\t11080000
Ots01_100\tOts01\t100
"""

WEEKLY_ENV_TSV = """\
year\tjulian_week\tmean_temp_c\tmean_discharge_cfs
2019\t18\t12.1\t4200
2019\t19\t12.8\t3900
2019\t20\t13.5\t3600
2019\t21\t14.0\t3300
2019\t22\t14.6\t3100
2020\t18\t11.8\t4800
2020\t19\t12.5\t4500
2020\t20\t13.1\t4100
2020\t21\t13.9\t3700
2020\t22\t14.4\t3400
"""

USGS_RDB = """\
# ---------------------------------- WARNING ----------------------------------------
# Provisional data subject to revision.
#    USGS 14372300 ROGUE RIVER NEAR AGNESS, OR
#
agency_cd\tsite_no\tdatetime\ttz_cd\t69928_00060\t69928_00060_cd\t69929_00010\t69929_00010_cd
5s\t15s\t20d\t6s\t14n\t10s\t14n\t10s
USGS\t14372300\t2020-05-01 00:00\tPDT\t4000\tP\t11.0\tP
USGS\t14372300\t2020-05-01 00:15\tPDT\t4200\tP\t12.0\tP
USGS\t14372300\t2020-05-02 00:00\tPDT\t3900\tP\tEqp\tP
USGS\t14372300\t2020-05-08 00:00\tPDT\t3700\tP\t12.6\tP
"""

HISTORICAL_TSV = """\
date\tn_samples
05/03/2019\t3
05/20/2019\t2
"""


def calls_tsv() -> str:
    lines = ["sample_id\tmarker\tgenotype"]
    for sample_id, row in CALLS.items():
        for marker, call in zip(MARKERS, row):
            lines.append(f"{sample_id}\t{marker}\t{call}")
    return "\n".join(lines) + "\n"


@pytest.fixture
def input_files(tmp_path):
    """Write a complete set of small pipeline inputs and return their paths."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    contents = {
        "metadata": ("intake.tsv", METADATA_TSV),
        "genotypes": ("calls.tsv", calls_tsv()),
        "marker_info": ("marker_info.tsv", MARKER_INFO_TSV),
        "marker_positions": ("positions.tsv", POSITIONS_TSV),
        "weekly_environment": ("weekly.tsv", WEEKLY_ENV_TSV),
        "usgs_gauge": ("gauge.rdb", USGS_RDB),
        "historical_dates": ("historical.tsv", HISTORICAL_TSV),
    }
    paths = {}
    for name, (filename, text) in contents.items():
        path = data_dir / filename
        path.write_text(text)
        paths[name] = path
    return paths


@pytest.fixture
def cohort(input_files):
    samples = metadata.load_sample_metadata(input_files["metadata"])
    return metadata.filter_cohort(samples, 2020)


@pytest.fixture
def marker_info(input_files):
    return genotypes.load_marker_info(input_files["marker_info"])


@pytest.fixture
def cohort_genotypes(input_files, cohort):
    wide = genotypes.pivot_genotypes(genotypes.load_genotype_calls(input_files["genotypes"]))
    return genotypes.join_sample_metadata(wide, cohort)


@pytest.fixture
def season_samples():
    """Minimal classified-sample frame for trajectory and frequency checks."""
    return pd.DataFrame(
        {
            "sample_id": ["a", "b", "c", "d", "e", "f"],
            "day_of_year": [100, 120, 140, 150, 160, 170],
            "week_of_year": [15, 18, 20, 22, 23, 25],
            "snp1_class": [
                "early_homozygote",
                "heterozygote",
                "late_homozygote",
                "early_homozygote",
                None,
                "late_homozygote",
            ],
        }
    )
