import streamlit as st

from console import render_overview


st.set_page_config(page_title="Water Utility Console", page_icon="💧", layout="wide")

render_overview()

st.sidebar.title("About")
st.sidebar.info(
    """
Admin console for users, connections, billing, readings and network health.
Open a section above to search, sort, edit or bulk-delete its records, or switch
to the Customer Portal for a single customer's usage and bills.
    """
)
