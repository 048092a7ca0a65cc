"""
Streamlit UI for the Calcverse estimators.

Tabs:
- Spay/Neuter cost estimate with clinic and procedure comparisons
- Garden planner (soil amendments, rotation, succession, plant families)
- Calculator directory
- System info
"""
import sys
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import streamlit as st

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from calcverse import __version__
from calcverse.calculators import crop_rotation, spay_neuter
from calcverse.calculators.crop_rotation import GardenBed, SoilAmendmentInput
from calcverse.calculators.spay_neuter import SpayNeuterInput
from calcverse.config.logging_config import setup_logging
from calcverse.config.settings import get_settings
from calcverse.engine import EstimationEngine, EstimationError
from calcverse.services import directory


st.set_page_config(
    page_title="Calcverse Estimators",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_engine():
    """Get cached engine instance."""
    setup_logging()
    return EstimationEngine()


@st.cache_resource
def get_catalog():
    return directory.load_catalog(), directory.load_category_names()


try:
    engine = get_engine()
    settings = get_settings()
except Exception as e:
    st.error(f"System Error: {e}")
    st.stop()


def table_options(name):
    """(keys, key -> label) for a rule table, in file order."""
    table = engine.tables[name]
    return table.keys(), {k: table.label(k) for k in table.keys()}


def show_result(result):
    m1, m2 = st.columns(2)
    m1.metric("Total", f"{result.total:,.2f} {result.unit}")
    m2.metric("Line Items", len(result.line_items))

    st.dataframe(
        pd.DataFrame([
            {"Item": li.label, "Amount": li.display_amount, "Note": li.note}
            for li in result.line_items
        ]),
        use_container_width=True,
        hide_index=True,
    )

    for warning in result.warnings:
        st.warning(warning)
    if result.tips:
        with st.expander("💡 Tips"):
            for tip in result.tips:
                st.markdown(f"- {tip}")
    if result.next_steps:
        with st.expander("✅ Next Steps"):
            for i, step in enumerate(result.next_steps, start=1):
                st.markdown(f"{i}. {step}")

    with st.expander("🔍 Resolution Details"):
        for t in result.trace:
            if t.value:
                st.caption(f"**{t.step}**: {t.description} = `{t.value}`")
            else:
                st.caption(f"**{t.step}**: {t.description}")


st.title("Calcverse Estimators")
st.caption(f"v{__version__} | {datetime.now().strftime('%Y-%m-%d')}")

tab1, tab2, tab3, tab4 = st.tabs(["🐾 Spay/Neuter", "🌱 Garden Planner", "📚 Directory", "📊 System"])


# ============================================================================
# TAB 1: SPAY/NEUTER
# ============================================================================
with tab1:
    col1, col2 = st.columns([1.2, 1.8], gap="large")

    with col1:
        st.subheader("Pet Details")
        species_keys, species_labels = table_options('species')
        species = st.selectbox("Species", species_keys, format_func=species_labels.get)
        gender_keys, gender_labels = table_options('genders')
        gender = st.radio(
            "Gender", gender_keys, index=gender_keys.index('female'), format_func=gender_labels.get, horizontal=True
        )
        weight_keys, weight_labels = table_options('weight_categories')
        weight = st.selectbox("Weight", weight_keys, index=1, format_func=weight_labels.get, disabled=species != 'dog')
        age = st.number_input("Age (months)", min_value=0, max_value=360, value=6, step=1)

        st.subheader("Clinic")
        tier_keys, tier_labels = table_options('clinic_tiers')
        clinic_tier = st.selectbox("Clinic Type", tier_keys, index=tier_keys.index('private-practice'), format_func=tier_labels.get)
        region = st.selectbox("Region", engine.tables['regions'].keys())
        area_keys, area_labels = table_options('area_types')
        area_type = st.selectbox("Area", area_keys, index=area_keys.index('suburban'), format_func=area_labels.get)
        proc_keys, proc_labels = table_options('procedures')
        procedure = st.selectbox("Procedure", proc_keys, format_func=proc_labels.get)

        with st.expander("Special Conditions"):
            pregnant = st.checkbox("Pregnant or in heat")
            cryptorchid = st.checkbox("Cryptorchid")
            brachy = st.checkbox("Brachycephalic breed")
            obese = st.checkbox("Overweight")

        with st.expander("Additional Services", expanded=True):
            bloodwork = st.checkbox("Pre-op bloodwork")
            iv_fluids = st.checkbox("IV fluids")
            pain_med = st.checkbox("Pain medication", value=True)
            e_collar = st.checkbox("E-collar", value=True)
            microchip = st.checkbox("Microchip")
            antibiotics = st.checkbox("Antibiotics")
            post_op = st.checkbox("Post-op exam")

        with st.expander("Savings"):
            pets = st.number_input("Number of pets", min_value=1, max_value=100, value=1, step=1)
            wellness = st.checkbox("Wellness plan")
            reimbursement = st.number_input("Plan reimbursement ($)", min_value=0.0, max_value=10000.0, value=150.0, disabled=not wellness)
            compare_recovery = st.checkbox("Compare traditional vs laparoscopic")

    with col2:
        st.subheader("Estimate")
        inputs = SpayNeuterInput(
            species=species, gender=gender, weight_category=weight, age_in_months=int(age),
            region=region, area_type=area_type, clinic_tier=clinic_tier,
            is_pregnant_or_in_heat=pregnant, is_cryptorchid=cryptorchid,
            is_brachycephalic=brachy, is_obese=obese, procedure_type=procedure,
            include_pre_op_bloodwork=bloodwork, include_iv_fluids=iv_fluids,
            include_pain_medication=pain_med, include_e_collar=e_collar,
            include_microchip=microchip, include_antibiotics=antibiotics,
            include_post_op_exam=post_op, has_wellness_plan=wellness,
            wellness_plan_reimbursement=float(reimbursement), number_of_pets=int(pets),
            show_recovery_comparison=compare_recovery,
        )
        try:
            result = spay_neuter.estimate_spay_neuter(inputs, engine=engine)
        except EstimationError as e:
            st.error(str(e))
        else:
            e1, e2 = st.columns(2)
            e1.metric("Total Estimated Cost", f"${result.details['total_estimated_cost']:,.2f}")
            e2.metric("Out-of-Pocket", f"${result.details['out_of_pocket_cost']:,.2f}")
            show_result(result)
            st.info(result.details['age_recommendation'])
            c1, c2 = st.columns(2)
            c1.metric("National Average", f"${result.details['national_average_cost']:,.2f}")
            c2.metric("Regional Average", f"${result.details['regional_average_cost']:,.2f}")

            for name, rows in result.comparisons.items():
                st.markdown(f"**Comparison by {name.replace('_', ' ')}**")
                st.dataframe(
                    pd.DataFrame([
                        {"Option": r.label, "Total": r.total, "Notes": "; ".join(r.notes)}
                        for r in rows
                    ]),
                    use_container_width=True,
                    hide_index=True,
                )


# ============================================================================
# TAB 2: GARDEN PLANNER
# ============================================================================
with tab2:
    col1, col2 = st.columns(2, gap="large")

    with col1:
        st.subheader("Soil Amendment")
        amend_keys, amend_labels = table_options('soil_amendments')
        amendment = st.selectbox("Amendment", amend_keys, format_func=amend_labels.get)
        area = st.number_input("Area (sq ft)", min_value=1.0, value=100.0, step=10.0)
        try:
            soil = crop_rotation.estimate_soil_amendment(SoilAmendmentInput(amendment, float(area)), engine=engine)
        except EstimationError as e:
            st.error(str(e))
        else:
            st.metric("Amount Needed", f"{soil.total:g} {soil.unit}")
            st.caption(soil.details['description'])
            for tip in soil.tips:
                st.markdown(f"- {tip}")

        st.subheader("Succession Planting")
        crop_keys, crop_labels = table_options('succession_crops')
        crop = st.selectbox("Crop", crop_keys, format_func=crop_labels.get)
        start = st.date_input("First planting", value=date.today())
        plantings = crop_rotation.succession_dates(crop, start, tables=engine.tables)
        st.dataframe(
            pd.DataFrame([
                {"Planting": p.planting, "Date": p.planting_date, "Harvest Week": p.harvest_week}
                for p in plantings
            ]),
            use_container_width=True,
            hide_index=True,
        )

    with col2:
        st.subheader("Rotation Schedule")
        years = st.select_slider("Rotation length (years)", options=[3, 4, 5], value=4)
        bed_count = st.number_input("Beds", min_value=1, max_value=20, value=4, step=1)
        beds = [GardenBed(i, f"Bed {i}") for i in range(1, int(bed_count) + 1)]
        schedule = crop_rotation.rotation_schedule(years, beds, tables=engine.tables)
        grid = pd.DataFrame([
            {"Year": a.year, "Bed": a.bed_name, "Crops": ", ".join(a.crops)} for a in schedule
        ]).pivot(index="Bed", columns="Year", values="Crops")
        st.dataframe(grid, use_container_width=True)

        st.subheader("Plant Families")
        family_keys, family_labels = table_options('plant_families')
        family = crop_rotation.plant_family(
            st.selectbox("Family", family_keys, format_func=family_labels.get), tables=engine.tables
        )
        st.markdown(f"**{family['feeder_category']}** · {family['season']} · {family['days_to_maturity']}")
        st.caption(family['rotation_notes'])
        st.markdown(f"Companions: {', '.join(family['companions'])}")
        st.markdown(f"Avoid: {', '.join(family['antagonists'])}")


# ============================================================================
# TAB 3: DIRECTORY
# ============================================================================
with tab3:
    st.subheader("📚 All Calculators")
    catalog, category_names = get_catalog()

    col1, col2, col3, col4 = st.columns([2, 1, 1, 1])
    with col1:
        query = st.text_input("Search", placeholder="Search calculators...", label_visibility="collapsed")
    with col2:
        category = st.selectbox("Category", [directory.ALL] + list(category_names), format_func=lambda s: category_names.get(s, "All"))
    with col3:
        difficulty = st.selectbox("Difficulty", [directory.ALL, 'basic', 'intermediate', 'advanced'])
    with col4:
        popular_only = st.checkbox("Popular only")

    filtered = directory.filter_calculators(catalog, query, category, difficulty, popular_only)
    st.caption(f"Showing {len(filtered)} of {len(catalog)} calculators")
    for name, group in directory.group_by_category(filtered, category_names):
        st.markdown(f"**{name}** ({len(group)})")
        st.dataframe(group[['name', 'description', 'difficulty']], use_container_width=True, hide_index=True)


# ============================================================================
# TAB 4: SYSTEM
# ============================================================================
with tab4:
    st.header("System Status")
    c1, c2, c3 = st.columns(3)
    c1.metric("Rule Tables", len(engine.tables.names()))
    c2.metric("Spay/Neuter Rules", len(spay_neuter.get_definition().rules.rules))
    c3.metric("Soil Rules", len(crop_rotation.get_soil_definition().rules.rules))
    st.caption(f"Rules directory: {settings.rules_dir}")
