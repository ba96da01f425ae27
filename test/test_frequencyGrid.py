import unittest
import numpy as np
from numpy.testing import assert_almost_equal as assertAE
from numpy.testing import assert_array_equal
from pffrg.frequencyGrid import FrequencyGrid,trapezoidWeights
from pffrg.cutoffGrid import CutoffGrid
from pffrg.regulators import ScaleProp
from pffrg.exceptions import ConfigurationError,ProgrammingError

class testFrequencyGrid(unittest.TestCase):
    def setUp(self):
        self.grid=FrequencyGrid(np.geomspace(0.01,50,16))

    def test_mirroredMesh(self):
        assert_array_equal(self.grid.full[:16],-self.grid.values[::-1])
        assert_array_equal(self.grid.full[16:],self.grid.values)
        self.assertEqual(len(self.grid),16)

    def test_interpolateLinear(self):
        f=lambda w:3.0*w-1.5
        for w in np.linspace(0.01,50,97):
            lower,upper,bias=self.grid.interpolate(w)
            self.assertTrue(0<=bias<=1)
            values=self.grid.values
            assertAE((1-bias)*f(values[lower])+bias*f(values[upper]),f(w))

    def test_offset(self):
        values=self.grid.values
        self.assertEqual(self.grid.offset(0.0),0)
        self.assertEqual(self.grid.offset(values[3]),3)
        self.assertEqual(self.grid.offset(0.5*(values[3]+values[4])),4)
        self.assertEqual(self.grid.offset(100.0),15)
        with self.assertRaises(ProgrammingError):
            self.grid.offset(-1.0)

    def test_lesserGreater(self):
        values=self.grid.values
        w=0.5*(values[5]+values[6])
        self.assertEqual(self.grid.full[self.grid.lesser(w)],values[5])
        self.assertEqual(self.grid.full[self.grid.greater(w)],values[6])
        self.assertEqual(self.grid.full[self.grid.lesser(-w)],-values[6])
        self.assertEqual(self.grid.full[self.grid.greater(-w)],-values[5])

    def test_integrationWeights(self):
        mesh,weights=self.grid.integrationMesh()
        assertAE(np.sum(weights),mesh[-1]-mesh[0])
        assertAE(np.sum(weights*mesh),0.0)
        assertAE(trapezoidWeights(np.array([0.0,1.0,3.0])),[0.5,1.5,1.0])

    def test_invalidGrid(self):
        with self.assertRaises(ConfigurationError):
            FrequencyGrid([1.0])
        with self.assertRaises(ConfigurationError):
            FrequencyGrid([0.0,1.0])
        with self.assertRaises(ConfigurationError):
            FrequencyGrid([2.0,1.0])

class testCutoffGrid(unittest.TestCase):
    def test_exponential(self):
        cutoff=CutoffGrid.exponential(50.0,0.01,0.98)
        self.assertEqual(cutoff[0],50.0)
        self.assertEqual(cutoff[cutoff.last()],0.01)
        self.assertTrue(np.all(np.diff(cutoff.values)<0))
        self.assertEqual(cutoff.find(50.0),0)
        self.assertEqual(cutoff.find(3.0),cutoff.end())

    def test_linear(self):
        cutoff=CutoffGrid.linear(2.0,1.0,5)
        assertAE(cutoff.values,[2.0,1.75,1.5,1.25,1.0])
        self.assertEqual(cutoff.last(),4)

    def test_invalidGrid(self):
        with self.assertRaises(ConfigurationError):
            CutoffGrid([1.0,2.0])
        with self.assertRaises(ConfigurationError):
            CutoffGrid([1.0])
        with self.assertRaises(ConfigurationError):
            CutoffGrid.exponential(1.0,2.0,0.5)

class testRegulators(unittest.TestCase):
    def test_litimPropagator(self):
        prop=ScaleProp('litim')
        wQ=np.array([-2.0,-0.5,0.0,0.5,2.0])
        sE=np.zeros(5)
        assertAE(prop.gF(wQ,sE,1.0),[-0.5,-1.0,1.0,1.0,0.5])
        assertAE(prop.sF(wQ,sE,1.0),[0.0,1.0,-1.0,-1.0,0.0])

    def test_derivative(self):
        for regulator in ['litim','additive','sharp','soft']:
            prop=ScaleProp(regulator)
            wQ=np.array([-1.3,-0.4,0.7,2.1])
            sE=0.1*wQ
            cutoff,delta=0.8,1e-6
            numeric=(prop.gF(wQ,sE,cutoff+delta)-prop.gF(wQ,sE,cutoff-delta))/(2*delta)
            assertAE(prop.sF(wQ,sE,cutoff),numeric,decimal=5)

    def test_zeroFrequency(self):
        for regulator in ['sharp','soft']:
            prop=ScaleProp(regulator)
            assertAE(prop.gF(np.zeros(1),np.zeros(1),1.0),[0.0])
            assertAE(prop.sF(np.zeros(1),np.zeros(1),1.0),[0.0])

    def test_bubble(self):
        prop=ScaleProp('additive')
        wL,wR=np.array([0.3]),np.array([-1.2])
        expected=-(prop.gF(wL,0,1.0)*prop.sF(wR,0,1.0)+prop.sF(wL,0,1.0)*prop.gF(wR,0,1.0))
        assertAE(prop.bubble(wL,wR,0,0,1.0),expected)

    def test_unknownRegulator(self):
        with self.assertRaises(ConfigurationError):
            ScaleProp('hard')

if __name__=='__main__':
    unittest.main()
